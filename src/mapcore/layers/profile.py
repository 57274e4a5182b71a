"""Batch orchestrator: loads every layer a profile declares.

Descriptors are loaded in fixed-size batches. Each batch runs its
layers concurrently and must settle completely before the next one
starts, so at most ``batch_size`` fetches are in flight and batches
follow the profile's order.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any, Mapping, Sequence

import pydantic
from loguru import logger

from mapcore.comms.event_bus import LAYERS_LOADED, EventBus
from mapcore.config import Settings, settings as default_settings
from mapcore.layers.errors import LayerError
from mapcore.layers.geometry import merge_bounds
from mapcore.layers.layer import LayerDescriptor, LoadResult, LoadState
from mapcore.layers.loader import LayerLoader
from mapcore.layers.registry import LayerRegistry
from mapcore.layers.surfaces import LayerManagerSurface, MapSurface


def profile_descriptors(profile: Mapping) -> list | None:
    """Layer list of a profile: ``geojsonLayers``, ``geojson.layers`` or ``layers``."""
    if isinstance(profile.get("geojsonLayers"), list):
        return profile["geojsonLayers"]
    geojson = profile.get("geojson")
    if isinstance(geojson, Mapping) and isinstance(geojson.get("layers"), list):
        return geojson["layers"]
    if isinstance(profile.get("layers"), list):
        return profile["layers"]
    return None


def _option(options: Mapping, name: str, camel: str, default: Any = None) -> Any:
    if name in options:
        return options[name]
    return options.get(camel, default)


class ProfileLoader:
    """Loads a profile's layers through a ``LayerLoader``.

    Args:
        loader: Single-layer loader; its registry receives every layer.
        layer_manager: Told about the loaded layers once all batches finish.
        map_surface: Viewport fitted to the union of loaded bounds.
        event_bus: Receives ``layers_loaded``.
    """

    def __init__(
        self,
        loader: LayerLoader,
        layer_manager: LayerManagerSurface | None = None,
        map_surface: MapSurface | None = None,
        event_bus: EventBus | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._loader = loader
        self._layer_manager = layer_manager
        self._map_surface = map_surface
        self._event_bus = event_bus
        self._id_counter = itertools.count()
        self.batches_executed = 0
        self.last_results: list[LoadResult] = []

    @property
    def registry(self) -> LayerRegistry:
        return self._loader.registry

    async def load_from_active_profile(
        self, profile: Any, options: Mapping | None = None
    ) -> list[LoadResult]:
        """Discover the descriptor list of ``profile`` and load it."""
        if not isinstance(profile, Mapping):
            logger.warning("No active profile or invalid profile; nothing loaded")
            return []
        descriptors = profile_descriptors(profile)
        if not descriptors:
            logger.info("Profile declares no geojsonLayers / geojson.layers / layers; nothing to load")
            return []
        return await self.load_from_profile(descriptors, options, profile.get("id"))

    async def load_from_profile(
        self,
        descriptors: Any,
        options: Mapping | None = None,
        profile_id: str | None = None,
    ) -> list[LoadResult]:
        """Load ``descriptors`` in batches.

        Args:
            descriptors: Ordered descriptor dicts (or ``LayerDescriptor``s).
            options: ``batch_size``, ``batch_delay`` (seconds),
                ``fit_bounds_on_load`` (default True) and ``max_zoom_on_fit``;
                camelCase spellings are accepted too.
            profile_id: Owning profile, used to resolve ``dataFile`` paths.

        Returns:
            Results of the layers that reached ``registered``, in profile order.
        """
        options = options or {}
        if not isinstance(descriptors, Sequence) or isinstance(descriptors, (str, bytes)):
            logger.warning("Profile has no descriptor list; nothing loaded")
            return []

        count = len(descriptors)
        if count > self._settings.max_layers_warning:
            logger.warning(f"{count} layers declared, this may affect performance")
        elif count > self._settings.rich_profile_threshold:
            logger.info(f"{count} layers declared, rich profile")

        batch_size = max(1, int(_option(options, "batch_size", "batchSize", self._settings.batch_size)))
        batch_delay = float(_option(options, "batch_delay", "batchDelay", self._settings.batch_delay))

        # Auto z-order counts only the descriptors that will actually load
        tasks = []
        position = 0
        for index, raw in enumerate(descriptors):
            descriptor = self._descriptor(index, raw, profile_id)
            tasks.append(lambda d=descriptor, p=position: self._load_one(d, p, profile_id))
            if isinstance(descriptor, LayerDescriptor):
                position += 1
        results = await self._load_by_batch(tasks, batch_size, batch_delay)
        self.last_results = results

        loaded = [r for r in results if r.ok]
        failed = [r for r in results if r.state is LoadState.FAILED]
        logger.info(
            f"Profile {profile_id or '(unknown)'}: {len(loaded)} layer(s) loaded, "
            f"{len(failed)} failed, {len(results) - len(loaded) - len(failed)} skipped"
        )

        records = [r for r in (self.registry.get(res.layer_id) for res in loaded) if r is not None]
        if records and self._layer_manager is not None:
            try:
                self._layer_manager.register_layers(records)
            except Exception as e:
                logger.error(f"Layer manager registration failed: {e}")

        if _option(options, "fit_bounds_on_load", "fitBoundsOnLoad", True) is not False \
                and self._map_surface is not None:
            bounds = merge_bounds(r.bounds for r in records)
            if bounds is not None:
                max_zoom = _option(options, "max_zoom_on_fit", "maxZoomOnFit")
                self._map_surface.fit_bounds(bounds, max_zoom if isinstance(max_zoom, int) else None)
                logger.debug(f"Viewport fitted to {bounds}")

        if self._event_bus is not None:
            self._event_bus.publish(LAYERS_LOADED, {
                "count": len(loaded),
                "layers": [{"id": r.layer_id, "label": r.label} for r in loaded],
                "failed": [{"id": r.layer_id, "error": r.error, "status": r.http_status} for r in failed],
            })
        return loaded

    async def _load_by_batch(self, tasks: list, batch_size: int, delay: float) -> list[LoadResult]:
        results: list[LoadResult] = []
        total = (len(tasks) + batch_size - 1) // batch_size
        for start in range(0, len(tasks), batch_size):
            batch = tasks[start:start + batch_size]
            began = time.monotonic()
            results.extend(await asyncio.gather(*(fn() for fn in batch)))
            self.batches_executed += 1
            logger.info(
                f"Batch {start // batch_size + 1}/{total} loaded in "
                f"{(time.monotonic() - began) * 1000:.0f} ms"
            )
            if start + batch_size < len(tasks) and delay > 0:
                await asyncio.sleep(delay)
        return results

    def _descriptor(self, index: int, raw: Any, profile_id: str | None) -> LayerDescriptor | LoadResult:
        """Validate and complete one descriptor, or return why it is skipped."""
        if isinstance(raw, LayerDescriptor):
            descriptor = raw
        elif isinstance(raw, Mapping):
            if raw.get("active") is False:
                layer_id = raw.get("id") or "(no id)"
                logger.debug(f"Layer {layer_id} inactive (active: false), skipped")
                return LoadResult(layer_id=str(layer_id), label=str(raw.get("label") or layer_id),
                                  state=LoadState.SKIPPED)
            try:
                descriptor = LayerDescriptor.model_validate(dict(raw))
            except pydantic.ValidationError as e:
                layer_id = str(raw.get("id") or f"#{index}")
                logger.warning(f"Descriptor {layer_id} is invalid, skipped: {e.error_count()} error(s)")
                return LoadResult(layer_id=layer_id, label=layer_id, state=LoadState.FAILED,
                                  error=str(e))
        else:
            logger.warning(f"Descriptor #{index} is not an object, skipped: {raw!r:.80}")
            return LoadResult(layer_id=f"#{index}", label=f"#{index}", state=LoadState.SKIPPED)

        if not descriptor.active:
            logger.debug(f"Layer {descriptor.id or '(no id)'} inactive (active: false), skipped")
            return LoadResult(layer_id=descriptor.id or f"#{index}", label=descriptor.label or "",
                              state=LoadState.SKIPPED)
        if not descriptor.url and not descriptor.data_file:
            logger.warning(
                f"Descriptor #{index} ({descriptor.id or descriptor.label or 'no id'}) "
                f"has neither url nor dataFile, skipped"
            )
            return LoadResult(layer_id=descriptor.id or f"#{index}", label=descriptor.label or "",
                              state=LoadState.SKIPPED)

        update: dict[str, Any] = {}
        if not descriptor.id:
            update["id"] = f"geojson-layer-{next(self._id_counter)}"
        if not descriptor.label:
            update["label"] = update.get("id", descriptor.id)
        if not descriptor.profile_id and profile_id:
            update["profile_id"] = profile_id
        return descriptor.model_copy(update=update) if update else descriptor

    async def _load_one(
        self, descriptor: LayerDescriptor | LoadResult, position: int, profile_id: str | None
    ) -> LoadResult:
        if isinstance(descriptor, LoadResult):
            return descriptor

        layer_id = descriptor.id
        log = logger.bind(layer_id=layer_id)
        try:
            return await self._loader.load_layer(descriptor, profile_id, position=position)
        except LayerError as e:
            status = getattr(e, "status", None)
            log.error(f"Layer {layer_id} failed ({type(e).__name__}): {e}")
            return LoadResult(layer_id=layer_id, label=descriptor.label, state=LoadState.FAILED,
                              error=str(e), http_status=status)
        except Exception as e:
            log.error(f"Layer {layer_id} failed unexpectedly: {e}")
            return LoadResult(layer_id=layer_id, label=descriptor.label, state=LoadState.FAILED,
                              error=str(e))
