"""LayerRegistry: the single source of truth for loaded layers.

Only the layer loader creates or replaces entries. UI collaborators get
a ``RegistryView`` that can read entries and flip visibility or the
current style, nothing else.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from loguru import logger

from mapcore.comms.event_bus import (
    LAYER_REMOVED,
    LAYER_STYLE_CHANGED,
    LAYER_VISIBILITY_CHANGED,
    EventBus,
)
from mapcore.layers.geometry import geometry_kind
from mapcore.layers.layer import LayerRuntimeRecord, StyleRecord


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LayerRegistry:
    """Registry of loaded layers, keyed by layer id.

    Args:
        event_bus: Receives visibility, style and removal events. Optional.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._layers: dict[str, LayerRuntimeRecord] = {}
        self._event_bus = event_bus

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)

    def get(self, layer_id: str) -> LayerRuntimeRecord | None:
        return self._layers.get(layer_id)

    def set(self, layer_id: str, record: LayerRuntimeRecord) -> None:
        """Create or replace an entry. Reserved for the layer loader."""
        now = _now()
        previous = self._layers.get(layer_id)
        record.created_at = previous.created_at if previous else (record.created_at or now)
        record.updated_at = now
        self._layers[layer_id] = record

    def for_each(self, fn: Callable[[LayerRuntimeRecord, str], Any]) -> None:
        """Call ``fn(record, layer_id)`` for every entry in insertion order."""
        for layer_id, record in list(self._layers.items()):
            fn(record, layer_id)

    def delete(self, layer_id: str) -> bool:
        """Remove a layer.

        Returns:
            True if the layer was removed, False if it didn't exist.
        """
        record = self._layers.pop(layer_id, None)
        if record is None:
            return False
        group = record.cluster_group
        if group is not None and hasattr(group, "remove_layer"):
            group.remove_layer(layer_id)
        self._publish(LAYER_REMOVED, {"layer_id": layer_id})
        return True

    def list_layers(self) -> list[LayerRuntimeRecord]:
        return list(self._layers.values())

    def ids(self) -> list[str]:
        return list(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._layers

    def __iter__(self) -> Iterator[LayerRuntimeRecord]:
        return iter(list(self._layers.values()))

    def clear(self) -> None:
        """Drop every entry, e.g. when the owning profile is unloaded."""
        for layer_id in list(self._layers):
            self.delete(layer_id)
        logger.info("Layer registry cleared")

    def set_visibility(self, layer_id: str, visible: bool) -> None:
        """Set the visibility of a layer.

        Raises:
            KeyError: If the layer_id is not found.
        """
        record = self._layers.get(layer_id)
        if record is None:
            raise KeyError(f"Layer not found: {layer_id}")
        if record.visible == visible:
            return
        record.visible = visible
        record.updated_at = _now()
        self._publish(LAYER_VISIBILITY_CHANGED, {"layer_id": layer_id, "visible": visible})

    def set_current_style(self, layer_id: str, style: StyleRecord | None) -> None:
        """Attach a loaded style to a layer.

        Raises:
            KeyError: If the layer_id is not found.
        """
        record = self._layers.get(layer_id)
        if record is None:
            raise KeyError(f"Layer not found: {layer_id}")
        record.current_style = style
        record.updated_at = _now()
        self._publish(
            LAYER_STYLE_CHANGED,
            {"layer_id": layer_id, "style_id": style.metadata.style_id if style else None},
        )

    def snapshot(self, layer_id: str) -> dict | None:
        """Read-only summary of one entry for legend and layer panels."""
        record = self._layers.get(layer_id)
        if record is None:
            return None
        style = record.current_style
        return {
            "id": record.id,
            "label": record.label,
            "geometry_type": record.geometry_type,
            "geometry": geometry_kind(record.geometry_type),
            "visible": record.visible,
            "z_index": record.z_index,
            "feature_count": len(record.features),
            "use_shared_cluster": record.use_shared_cluster,
            "pending_shared_cluster": record.pending_shared_cluster,
            "style_id": style.metadata.style_id if style else None,
            "style_key": style.cache_key if style else None,
            "has_integrated_labels": style.metadata.has_integrated_labels if style else False,
        }

    def view(self) -> RegistryView:
        return RegistryView(self)


class RegistryView:
    """Narrow facade handed to UI collaborators."""

    def __init__(self, registry: LayerRegistry) -> None:
        self._registry = registry

    def get(self, layer_id: str) -> dict | None:
        return self._registry.snapshot(layer_id)

    def for_each(self, fn: Callable[[dict, str], Any]) -> None:
        for layer_id in self._registry.ids():
            fn(self._registry.snapshot(layer_id), layer_id)

    def snapshot(self, layer_id: str) -> dict | None:
        return self._registry.snapshot(layer_id)

    def set_visibility(self, layer_id: str, visible: bool) -> None:
        self._registry.set_visibility(layer_id, visible)

    def set_current_style(self, layer_id: str, style: StyleRecord | None) -> None:
        self._registry.set_current_style(layer_id, style)
