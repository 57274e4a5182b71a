"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from MAPCORE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MAPCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Debug mode bypasses the style cache entirely
    debug: bool = False

    # Where profile folders live, and the server that hosts them
    profiles_base_path: str = "profiles"
    data_base_url: str = ""
    http_timeout: float = 20.0

    # Batch loading
    batch_size: int = 3
    batch_delay: float = 0.2  # seconds yielded between batches (0 = none)

    # Clustering
    clustering_enabled: bool = True
    cluster_strategy: str = "unified"  # unified | by-layer | by-source | json-only
    cluster_radius: int = 80
    disable_clustering_at_zoom: int = 18
    shared_cluster_retry_delay: float = 0.5

    # Style documents
    style_validate_on_load: bool = True
    style_throw_on_validation_error: bool = True

    # Normalization
    default_poi_title: str = "Untitled"

    # Profile size notices (log only)
    max_layers_warning: int = 50
    rich_profile_threshold: int = 20


settings = Settings()
