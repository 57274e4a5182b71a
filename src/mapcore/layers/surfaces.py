"""Interfaces of the collaborators that sit outside the pipeline.

The host application supplies objects that satisfy these protocols; the
pipeline never imports a rendering or storage implementation.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from mapcore.layers.layer import Bounds, LayerRuntimeRecord


@runtime_checkable
class MapSurface(Protocol):
    """Rendering surface: only viewport fitting is driven from here."""

    def fit_bounds(self, bounds: Bounds, max_zoom: int | None = None) -> None: ...


@runtime_checkable
class LayerManagerSurface(Protocol):
    """Legend / layer toggle panel told about newly loaded layers."""

    def register_layers(self, records: list[LayerRuntimeRecord]) -> None: ...


@runtime_checkable
class SharedClusterSource(Protocol):
    """Owner of the lazily created shared cluster pool.

    Returns None while the pool does not exist yet.
    """

    def get_shared_cluster(self) -> Any: ...


@runtime_checkable
class DataCache(Protocol):
    """Async key/value store for offline copies of layer data."""

    async def store(self, layer_id: str, profile_id: str | None, data: dict) -> None: ...
