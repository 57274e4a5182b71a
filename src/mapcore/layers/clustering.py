"""Clustering strategy resolution and cluster groups.

Point layers either join the shared cross-layer pool, get an independent
per-layer cluster, or are not clustered. The shared pool is created
lazily by another subsystem, so it may be missing when a layer loads;
``SharedClusterResolution`` models the single retry and the fallback to
an independent cluster.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from loguru import logger

from mapcore.config import Settings, settings as default_settings
from mapcore.layers.geometry import dominant_geometry_type
from mapcore.layers.layer import ClusteringDecision, LayerDescriptor, SourceType
from mapcore.layers.surfaces import SharedClusterSource

STRATEGIES = ("unified", "by-layer", "by-source", "json-only")

NO_CLUSTERING = ClusteringDecision(should_cluster=False, use_shared_cluster=False)


class ClusterGroup:
    """Handle a rendering surface uses to merge nearby point markers.

    Tracks which layers contribute markers; adding the same layer twice
    is a no-op.
    """

    def __init__(
        self,
        max_cluster_radius: int = 80,
        disable_clustering_at_zoom: int = 18,
        shared: bool = False,
        owner: str | None = None,
    ) -> None:
        self.max_cluster_radius = max_cluster_radius
        self.disable_clustering_at_zoom = disable_clustering_at_zoom
        self.shared = shared
        self.owner = owner
        self._members: list[str] = []

    @property
    def members(self) -> list[str]:
        return list(self._members)

    def add_layer(self, layer_id: str) -> None:
        if layer_id not in self._members:
            self._members.append(layer_id)

    def remove_layer(self, layer_id: str) -> None:
        if layer_id in self._members:
            self._members.remove(layer_id)

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._members

    def __repr__(self) -> str:
        kind = "shared" if self.shared else f"independent:{self.owner}"
        return f"ClusterGroup({kind}, radius={self.max_cluster_radius}, members={len(self._members)})"


class SharedClusterPool:
    """Default ``SharedClusterSource``: empty until ``ensure()`` creates the pool."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings
        self._group: ClusterGroup | None = None

    def get_shared_cluster(self) -> ClusterGroup | None:
        return self._group

    def ensure(self) -> ClusterGroup:
        if self._group is None:
            self._group = ClusterGroup(
                max_cluster_radius=self._settings.cluster_radius,
                disable_clustering_at_zoom=self._settings.disable_clustering_at_zoom,
                shared=True,
            )
            logger.debug("Shared cluster pool created")
        return self._group

    def reset(self) -> None:
        self._group = None


class ClusteringResolver:
    """Per-layer clustering decisions.

    Args:
        shared_source: Where the shared pool comes from; may be None when
            no subsystem provides one.
    """

    def __init__(
        self,
        shared_source: SharedClusterSource | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._shared_source = shared_source
        self._settings = settings or default_settings

    def get_clustering_strategy(
        self,
        descriptor: LayerDescriptor,
        geojson: dict,
        source_format: SourceType = SourceType.GEOJSON,
    ) -> ClusteringDecision:
        """Decide how the layer's features are clustered.

        Evaluated in order: explicit ``enabled: false``; non-Point dominant
        geometry; layer ``strategy: by-source``; explicit ``enabled: true``
        (custom radius/zoom forces an independent cluster); otherwise the
        global strategy from settings.
        """
        config = descriptor.clustering_config
        enabled = config.get("enabled")
        radius = self._settings.cluster_radius
        zoom = self._settings.disable_clustering_at_zoom

        if enabled is False:
            return NO_CLUSTERING

        features = geojson.get("features") if isinstance(geojson, dict) else None
        if dominant_geometry_type(features or []) != "Point":
            return NO_CLUSTERING

        if config.get("strategy") == "by-source":
            return self._independent(config)

        if enabled is True:
            custom_radius = config.get("maxClusterRadius")
            custom_zoom = config.get("disableClusteringAtZoom")
            if (custom_radius is not None and custom_radius != radius) or (
                custom_zoom is not None and custom_zoom != zoom
            ):
                return self._independent(config)
            if self._settings.cluster_strategy == "unified":
                return ClusteringDecision(should_cluster=True, use_shared_cluster=True)
            return self._independent(config)

        if not self._settings.clustering_enabled:
            return NO_CLUSTERING

        strategy = self._settings.cluster_strategy
        if strategy == "unified":
            return ClusteringDecision(should_cluster=True, use_shared_cluster=True)
        if strategy == "by-layer":
            # Only layers that opt in get their own cluster
            return NO_CLUSTERING
        if strategy == "by-source":
            return self._independent(config)
        if strategy == "json-only":
            if source_format is SourceType.JSON:
                return self._independent(config)
            return NO_CLUSTERING

        logger.warning(
            f"Unknown clustering strategy '{strategy}' (expected one of {', '.join(STRATEGIES)}), using 'unified'"
        )
        return ClusteringDecision(should_cluster=True, use_shared_cluster=True)

    def _independent(self, config: dict) -> ClusteringDecision:
        return ClusteringDecision(
            should_cluster=True,
            use_shared_cluster=False,
            max_cluster_radius=config.get("maxClusterRadius") or self._settings.cluster_radius,
            disable_clustering_at_zoom=config.get("disableClusteringAtZoom")
            or self._settings.disable_clustering_at_zoom,
        )

    def get_shared_cluster(self) -> ClusterGroup | None:
        """Current shared pool, or None when it does not exist yet.

        Never raises: a failing source is logged and treated as absent.
        """
        if self._shared_source is None:
            return None
        try:
            return self._shared_source.get_shared_cluster()
        except Exception as e:
            logger.error(f"Shared cluster source failed: {e}")
            return None

    def create_independent_cluster(
        self,
        layer_id: str,
        max_cluster_radius: int | None = None,
        disable_clustering_at_zoom: int | None = None,
    ) -> ClusterGroup:
        group = ClusterGroup(
            max_cluster_radius=max_cluster_radius or self._settings.cluster_radius,
            disable_clustering_at_zoom=disable_clustering_at_zoom or self._settings.disable_clustering_at_zoom,
            shared=False,
            owner=layer_id,
        )
        group.add_layer(layer_id)
        return group


class ResolutionState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FALLEN_BACK = "fallen_back"


class SharedClusterResolution:
    """Pending -> Resolved | FallenBack for one layer asking for the shared pool.

    ``try_resolve`` checks the pool once without waiting. ``settle`` waits
    ``retry_delay`` seconds, checks again, and falls back to an
    independent cluster when the pool is still missing.
    """

    def __init__(
        self,
        layer_id: str,
        resolver: ClusteringResolver,
        retry_delay: float,
        max_cluster_radius: int | None = None,
        disable_clustering_at_zoom: int | None = None,
    ) -> None:
        self.layer_id = layer_id
        self.max_cluster_radius = max_cluster_radius
        self.disable_clustering_at_zoom = disable_clustering_at_zoom
        self.state = ResolutionState.PENDING
        self.group: ClusterGroup | None = None
        self._resolver = resolver
        self._retry_delay = retry_delay

    def try_resolve(self) -> bool:
        if self.state is not ResolutionState.PENDING:
            return self.state is ResolutionState.RESOLVED
        pool = self._resolver.get_shared_cluster()
        if pool is None:
            return False
        pool.add_layer(self.layer_id)
        self.group = pool
        self.state = ResolutionState.RESOLVED
        return True

    async def settle(self) -> ClusterGroup:
        if self.state is ResolutionState.PENDING:
            await asyncio.sleep(self._retry_delay)
            if not self.try_resolve():
                self.group = self._resolver.create_independent_cluster(
                    self.layer_id, self.max_cluster_radius, self.disable_clustering_at_zoom
                )
                self.state = ResolutionState.FALLEN_BACK
                logger.warning(
                    f"Layer {self.layer_id}: shared cluster pool still unavailable after "
                    f"{self._retry_delay}s, using an independent cluster"
                )
        return self.group
