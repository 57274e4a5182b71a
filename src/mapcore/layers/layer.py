"""Data model for the layer pipeline.

``LayerDescriptor`` is parsed from profile JSON (camelCase keys) with
Pydantic and is immutable once read. Everything the pipeline produces
is a plain dataclass.

GeoJSON features travel as plain dicts in GeoJSON convention
([lng, lat] coordinate order); ``NormalizedPOI`` carries explicit
``lat``/``lng`` fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Bounds are (min_lat, min_lng, max_lat, max_lng)
Bounds = tuple[float, float, float, float]


class SourceType(str, Enum):
    """Origin format of a raw record."""

    JSON = "json"
    GEOJSON = "geojson"
    GPX = "gpx"
    ROUTE = "route"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class LoadState(str, Enum):
    """States of the single-layer load pipeline."""

    FETCHING = "fetching"
    CONVERTING = "converting"
    VALIDATING = "validating"
    CLUSTER_ASSIGNING = "cluster_assigning"
    STYLE_LOADING = "style_loading"
    REGISTERED = "registered"
    FAILED = "failed"
    SKIPPED = "skipped"


class LayerDescriptor(BaseModel):
    """One layer entry of a profile.

    Unknown keys (``sidepanel``, ``search``, ``table``...) are kept so
    downstream UI collaborators can read them from ``config``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: str | None = None
    label: str | None = None
    url: str | None = None
    data_file: str | None = Field(default=None, alias="dataFile")
    active: bool = True
    z_index: float | None = Field(default=None, alias="zIndex")
    clustering: bool | dict[str, Any] | None = None
    styles: dict[str, Any] | None = None
    tooltip: dict[str, Any] | None = None
    popup: dict[str, Any] | None = None
    labels: dict[str, Any] | None = None
    type: str | None = None
    geometry_type: str | None = Field(default=None, alias="geometryType")
    data_mapping: dict[str, Any] | None = Field(default=None, alias="dataMapping")
    layer_directory: str | None = Field(
        default=None,
        validation_alias=AliasChoices("layerDirectory", "_layerDirectory", "layer_directory"),
        serialization_alias="layerDirectory",
    )
    profile_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("profileId", "_profileId", "profile_id"),
        serialization_alias="profileId",
    )
    # Pre-supplied payload (e.g. from the offline data cache); bypasses the network
    cached_data: Any = Field(
        default=None,
        validation_alias=AliasChoices("cachedData", "_cachedData", "cached_data"),
        exclude=True,
        repr=False,
    )

    @property
    def clustering_config(self) -> dict[str, Any]:
        """``clustering`` may be a bool or an object; always return a dict."""
        if isinstance(self.clustering, dict):
            return self.clustering
        if isinstance(self.clustering, bool):
            return {"enabled": self.clustering}
        return {}

    @property
    def default_style(self) -> str | None:
        if self.styles and isinstance(self.styles.get("default"), str):
            return self.styles["default"]
        return None

    @property
    def is_gpx(self) -> bool:
        if self.type == "gpx":
            return True
        return bool(self.url and self.url.lower().endswith(".gpx"))

    @property
    def show_popup(self) -> bool:
        return bool(self.popup) and self.popup.get("enabled") is not False

    @property
    def popup_fields(self) -> list | None:
        if self.popup and isinstance(self.popup.get("fields"), list):
            return self.popup["fields"]
        return None

    @property
    def show_tooltip(self) -> bool:
        return bool(self.tooltip) and self.tooltip.get("enabled") is not False

    @property
    def tooltip_fields(self) -> list | None:
        if self.tooltip and isinstance(self.tooltip.get("fields"), list):
            return self.tooltip["fields"]
        return None

    def as_config(self) -> dict[str, Any]:
        """camelCase dict view, without the cached payload."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class NormalizedPOI:
    """Canonical feature record shared by every source format.

    Attributes:
        id: Never empty; synthesized when the source has no id-like field.
        source_type: Format the record came from.
        geometry_type: GeoJSON geometry type, or "Unknown".
        title: Never empty; falls back to the default title.
        lat, lng: Finite floats or None, never NaN.
        attributes: Flat copy of the source properties.
    """

    id: str
    source_type: SourceType
    geometry_type: str
    title: str
    description: str = ""
    lat: float | None = None
    lng: float | None = None
    category_id: str | None = None
    sub_category_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: Severity = Severity.ERROR
    feature_id: str | int | None = None
    context: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class ValidationResult:
    """Accepted features plus every issue found, errors and warnings alike."""

    valid_features: list[dict] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    rejected_count: int = 0

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [e for e in self.errors if e.severity is Severity.WARNING]


@dataclass(frozen=True)
class ClusteringDecision:
    should_cluster: bool
    use_shared_cluster: bool
    max_cluster_radius: int | None = None
    disable_clustering_at_zoom: int | None = None


@dataclass(frozen=True)
class StyleMetadata:
    profile_id: str
    layer_id: str
    style_id: str
    style_path: str
    has_integrated_labels: bool
    loaded_at: str


@dataclass(frozen=True)
class StyleRecord:
    style_data: dict[str, Any]
    label_config: dict[str, Any] | None
    metadata: StyleMetadata

    @property
    def cache_key(self) -> str:
        m = self.metadata
        return f"{m.profile_id}:{m.layer_id}:{m.style_id}"


@dataclass
class LayerRuntimeRecord:
    """Registry entry for one loaded layer.

    Attributes:
        features: Validated GeoJSON feature dicts, ready for rendering.
        pois: The same features as NormalizedPOI records, for tables/filters.
        cluster_group: Shared pool, independent pool or None.
        pending_shared_cluster: True while the shared pool is still being resolved.
        bounds: Extent of ``features`` or None when nothing has coordinates.
    """

    id: str
    label: str
    config: LayerDescriptor
    features: list[dict]
    geometry_type: str
    z_index: int
    pois: list[NormalizedPOI] = field(default_factory=list)
    source_format: SourceType = SourceType.GEOJSON
    visible: bool = False
    current_style: StyleRecord | None = None
    cluster_group: Any = None
    use_shared_cluster: bool = False
    pending_shared_cluster: bool = False
    bounds: Bounds | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class LoadResult:
    layer_id: str
    label: str
    state: LoadState
    feature_count: int = 0
    rejected_count: int = 0
    error: str | None = None
    http_status: int | None = None

    @property
    def ok(self) -> bool:
        return self.state is LoadState.REGISTERED
