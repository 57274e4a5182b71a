"""Single-layer loader.

Runs one descriptor through fetch -> convert -> validate -> cluster
assignment -> z-order -> registry write, then starts the work that must
not hold up registration in the background: the shared-cluster retry,
default style loading and the offline data-cache hand-off.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

import httpx
from loguru import logger

from mapcore.comms.event_bus import LAYER_CLUSTER_RESOLVED, LAYER_REGISTERED, EventBus
from mapcore.config import Settings, settings as default_settings
from mapcore.layers.clustering import (
    ClusterGroup,
    ClusteringResolver,
    ResolutionState,
    SharedClusterResolution,
)
from mapcore.layers.converter import auto_convert
from mapcore.layers.errors import ConfigError, LayerError, ParseError
from mapcore.layers.fetch import fetch_json, fetch_text
from mapcore.layers.geometry import (
    auto_z_index,
    clamp_z_index,
    dominant_geometry_type,
    features_bounds,
)
from mapcore.layers.layer import (
    LayerDescriptor,
    LayerRuntimeRecord,
    LoadResult,
    LoadState,
    SourceType,
)
from mapcore.layers.normalizer import normalize_feature
from mapcore.layers.registry import LayerRegistry
from mapcore.layers.styles import StyleLoader
from mapcore.layers.surfaces import DataCache
from mapcore.layers.validator import validate_feature_collection


def resolve_data_file_path(
    data_file: str,
    profile_id: str | None,
    layer_directory: str | None = None,
    base_path: str = "profiles",
) -> str:
    """Where a profile-relative ``dataFile`` lives.

    ``../x`` is relative to the profile root, ``/x`` is absolute, and
    anything else is relative to the layer directory when there is one.
    """
    base = base_path.strip().rstrip("/") or "profiles"
    if data_file.startswith("../"):
        return f"{base}/{profile_id}/{data_file[3:]}"
    if data_file.startswith("/"):
        return data_file
    if layer_directory:
        return f"{base}/{profile_id}/{layer_directory.strip('/')}/{data_file}"
    return f"{base}/{profile_id}/{data_file}"


class LayerLoader:
    """Loads single layers into a ``LayerRegistry``.

    Args:
        registry: Written only by this loader.
        client: httpx client for layer data; styles use the style loader's.
        style_loader: Loads ``styles.default`` in the background. Optional.
        resolver: Clustering decisions and shared-pool lookups.
        event_bus: Receives ``layer_registered`` and ``layer_cluster_resolved``.
        data_cache: Offline store for fetched data. Optional.
    """

    def __init__(
        self,
        registry: LayerRegistry,
        client: httpx.AsyncClient,
        style_loader: StyleLoader | None = None,
        resolver: ClusteringResolver | None = None,
        event_bus: EventBus | None = None,
        data_cache: DataCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self.registry = registry
        self._client = client
        self._style_loader = style_loader
        self._resolver = resolver or ClusteringResolver(settings=self._settings)
        self._event_bus = event_bus
        self._data_cache = data_cache
        self._pending: set[asyncio.Task] = set()

    # -- background tasks -------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_pending(self) -> None:
        """Wait for every background task, including ones started meanwhile."""
        while self._pending:
            tasks = list(self._pending)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, BaseException):
                    logger.error(f"Background task {task.get_name()} failed: {result}")

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)

    # -- pipeline ---------------------------------------------------------

    def data_url(self, descriptor: LayerDescriptor, profile_id: str | None) -> str:
        if descriptor.url:
            return descriptor.url
        if descriptor.data_file:
            return resolve_data_file_path(
                descriptor.data_file,
                profile_id,
                descriptor.layer_directory,
                self._settings.profiles_base_path,
            )
        raise ConfigError(f"Layer {descriptor.id} has neither url nor dataFile", layer_id=descriptor.id)

    async def _fetch(self, descriptor: LayerDescriptor, layer_id: str, profile_id: str | None) -> Any:
        if descriptor.cached_data is not None:
            logger.debug(f"Layer {layer_id}: using pre-supplied data")
            return descriptor.cached_data
        url = self.data_url(descriptor, profile_id)
        if descriptor.is_gpx:
            return await fetch_text(self._client, url, layer_id)
        return await fetch_json(self._client, url, layer_id)

    def _z_index(self, descriptor: LayerDescriptor, layer_id: str, position: int | None) -> int:
        if descriptor.z_index is None:
            if position is None:
                position = len([i for i in self.registry.ids() if i != layer_id])
            z_index = auto_z_index(position)
            logger.debug(f"Layer {layer_id}: zIndex auto-assigned to {z_index}")
            return z_index
        z_index = clamp_z_index(descriptor.z_index)
        if z_index != descriptor.z_index:
            logger.warning(f"Layer {layer_id}: zIndex {descriptor.z_index} clamped to {z_index}")
        return z_index

    async def load_layer(
        self,
        descriptor: LayerDescriptor,
        profile_id: str | None = None,
        position: int | None = None,
    ) -> LoadResult:
        """Load one layer and register it.

        Args:
            descriptor: The layer to load.
            profile_id: Owning profile, used for relative paths and styles.
            position: Index of the descriptor in its profile; drives the
                default zIndex. When omitted, the number of other layers
                already registered is used.

        Raises:
            ConfigError: no id, or no data location.
            FetchError: non-2xx response or network failure.
            ParseError: malformed JSON or GPX.
        """
        if not descriptor.id:
            raise ConfigError("Layer descriptor without id")
        layer_id = descriptor.id
        label = descriptor.label or layer_id
        profile_id = descriptor.profile_id or profile_id
        log = logger.bind(layer_id=layer_id)

        log.debug(f"Layer {layer_id}: {LoadState.FETCHING.value}")
        try:
            payload = await self._fetch(descriptor, layer_id, profile_id)

            log.debug(f"Layer {layer_id}: {LoadState.CONVERTING.value}")
            collection, source_format = auto_convert(
                payload, is_gpx=descriptor.is_gpx, default_title=self._settings.default_poi_title
            )
        except ParseError as e:
            e.layer_id = layer_id
            raise

        log.debug(f"Layer {layer_id}: {LoadState.VALIDATING.value}")
        validation = validate_feature_collection(collection, layer_id)
        features = validation.valid_features
        geojson = {**collection, "features": features}

        z_index = self._z_index(descriptor, layer_id, position)

        log.debug(f"Layer {layer_id}: {LoadState.CLUSTER_ASSIGNING.value}")
        decision = self._resolver.get_clustering_strategy(descriptor, geojson, source_format)
        cluster_group: ClusterGroup | None = None
        resolution: SharedClusterResolution | None = None
        if decision.should_cluster and decision.use_shared_cluster:
            clustering = descriptor.clustering_config
            resolution = SharedClusterResolution(
                layer_id,
                self._resolver,
                self._settings.shared_cluster_retry_delay,
                clustering.get("maxClusterRadius"),
                clustering.get("disableClusteringAtZoom"),
            )
            if resolution.try_resolve():
                cluster_group = resolution.group
                resolution = None
            else:
                log.debug(f"Layer {layer_id}: shared cluster pool not available yet, retrying later")
        elif decision.should_cluster:
            cluster_group = self._resolver.create_independent_cluster(
                layer_id, decision.max_cluster_radius, decision.disable_clustering_at_zoom
            )

        previous = self.registry.get(layer_id)
        if previous is not None and previous.cluster_group is not None \
                and previous.cluster_group is not cluster_group:
            previous.cluster_group.remove_layer(layer_id)

        config = descriptor.as_config()
        normalize_options = {"source_type": source_format, "default_title": self._settings.default_poi_title}
        pois = [
            poi
            for poi in (
                normalize_feature(SourceType.GEOJSON, f, config, normalize_options)
                for f in features
            )
            if poi is not None
        ]

        record = LayerRuntimeRecord(
            id=layer_id,
            label=label,
            config=descriptor,
            features=features,
            geometry_type=descriptor.geometry_type or dominant_geometry_type(features),
            z_index=z_index,
            pois=pois,
            source_format=source_format,
            visible=previous.visible if previous is not None else False,
            cluster_group=cluster_group,
            use_shared_cluster=cluster_group is not None and cluster_group.shared,
            pending_shared_cluster=resolution is not None,
            bounds=features_bounds(features),
        )
        self.registry.set(layer_id, record)
        log.info(
            f"Layer {layer_id}: {LoadState.REGISTERED.value} with {len(features)} features"
            + (f" ({validation.rejected_count} rejected)" if validation.rejected_count else "")
        )
        self._publish(LAYER_REGISTERED, {
            "layer_id": layer_id,
            "label": label,
            "feature_count": len(features),
            "z_index": z_index,
            "provisional": resolution is not None,
        })

        if resolution is not None:
            self._spawn(self._settle_shared_cluster(record, resolution), f"cluster:{layer_id}")
        if self._style_loader is not None and descriptor.default_style:
            log.debug(f"Layer {layer_id}: {LoadState.STYLE_LOADING.value}")
            self._spawn(self._apply_default_style(record, profile_id), f"style:{layer_id}")
        if self._data_cache is not None and descriptor.cached_data is None:
            self._spawn(self._store_data(layer_id, profile_id, geojson), f"cache:{layer_id}")

        return LoadResult(
            layer_id=layer_id,
            label=label,
            state=LoadState.REGISTERED,
            feature_count=len(features),
            rejected_count=validation.rejected_count,
        )

    def _is_current(self, record: LayerRuntimeRecord) -> bool:
        # A reload replaces the record; late results for the old one are dropped
        return self.registry.get(record.id) is record

    async def _settle_shared_cluster(
        self, record: LayerRuntimeRecord, resolution: SharedClusterResolution
    ) -> None:
        group = await resolution.settle()
        if not self._is_current(record):
            current = self.registry.get(record.id)
            if group.shared and (current is None or current.cluster_group is not group):
                group.remove_layer(record.id)
            return
        record.cluster_group = group
        record.use_shared_cluster = resolution.state is ResolutionState.RESOLVED
        record.pending_shared_cluster = False
        self._publish(LAYER_CLUSTER_RESOLVED, {"layer_id": record.id, "outcome": resolution.state.value})

    async def _apply_default_style(self, record: LayerRuntimeRecord, profile_id: str | None) -> None:
        try:
            style = await self._style_loader.load_default_style(profile_id or "", record.config)
        except LayerError as e:
            logger.warning(f"Layer {record.id}: default style not applied: {e}")
            return
        if style is not None and self._is_current(record):
            self.registry.set_current_style(record.id, style)

    async def _store_data(self, layer_id: str, profile_id: str | None, geojson: dict) -> None:
        try:
            await self._data_cache.store(layer_id, profile_id, geojson)
        except Exception as e:
            logger.warning(f"Layer {layer_id}: data cache store failed: {e}")
