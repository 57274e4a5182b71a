"""Tests for LayerRegistry and its read-mostly RegistryView."""
from __future__ import annotations

import pytest

from mapcore.comms.event_bus import (
    LAYER_REMOVED,
    LAYER_STYLE_CHANGED,
    LAYER_VISIBILITY_CHANGED,
    EventBus,
)
from mapcore.layers.clustering import ClusterGroup
from mapcore.layers.layer import LayerDescriptor, LayerRuntimeRecord, StyleMetadata, StyleRecord
from mapcore.layers.registry import LayerRegistry


def make_record(layer_id="poi", geometry_type="Point", **kwargs):
    return LayerRuntimeRecord(
        id=layer_id,
        label=layer_id.title(),
        config=LayerDescriptor(id=layer_id, url=f"{layer_id}.geojson"),
        features=[{"type": "Feature"}] * kwargs.pop("feature_count", 2),
        geometry_type=geometry_type,
        z_index=kwargs.pop("z_index", 99),
        **kwargs,
    )


def make_style(style_id="default", integrated=False):
    return StyleRecord(
        style_data={"id": style_id},
        label_config={"enabled": True, "isIntegrated": True} if integrated else None,
        metadata=StyleMetadata(
            profile_id="p",
            layer_id="poi",
            style_id=style_id,
            style_path=f"profiles/p/layers/poi/styles/{style_id}.json",
            has_integrated_labels=integrated,
            loaded_at="2024-01-01T00:00:00+00:00",
        ),
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def registry(bus):
    return LayerRegistry(event_bus=bus)


@pytest.mark.unit
class TestLayerRegistry:

    def test_set_and_get(self, registry):
        record = make_record()
        registry.set("poi", record)
        assert registry.get("poi") is record
        assert "poi" in registry
        assert len(registry) == 1
        assert record.created_at and record.updated_at

    def test_get_missing(self, registry):
        assert registry.get("nope") is None

    def test_replace_keeps_created_at(self, registry):
        first = make_record()
        registry.set("poi", first)
        second = make_record()
        registry.set("poi", second)
        assert second.created_at == first.created_at
        assert registry.get("poi") is second
        assert len(registry) == 1

    def test_for_each_in_insertion_order(self, registry):
        for layer_id in ("a", "b", "c"):
            registry.set(layer_id, make_record(layer_id))
        seen = []
        registry.for_each(lambda record, layer_id: seen.append((layer_id, record.label)))
        assert seen == [("a", "A"), ("b", "B"), ("c", "C")]

    def test_delete_leaves_cluster_group(self, registry, bus):
        q = bus.subscribe()
        group = ClusterGroup(shared=True)
        group.add_layer("poi")
        registry.set("poi", make_record(cluster_group=group))
        assert registry.delete("poi") is True
        assert not group.has_layer("poi")
        assert q.get_nowait() == {"type": LAYER_REMOVED, "data": {"layer_id": "poi"}}
        assert registry.delete("poi") is False

    def test_clear(self, registry):
        registry.set("a", make_record("a"))
        registry.set("b", make_record("b"))
        registry.clear()
        assert len(registry) == 0

    def test_set_visibility_publishes_once(self, registry, bus):
        q = bus.subscribe(LAYER_VISIBILITY_CHANGED)
        registry.set("poi", make_record())
        registry.set_visibility("poi", True)
        registry.set_visibility("poi", True)
        assert registry.get("poi").visible is True
        assert q.qsize() == 1
        assert q.get_nowait()["data"] == {"layer_id": "poi", "visible": True}

    def test_set_visibility_unknown_layer(self, registry):
        with pytest.raises(KeyError):
            registry.set_visibility("ghost", True)

    def test_set_current_style(self, registry, bus):
        q = bus.subscribe(LAYER_STYLE_CHANGED)
        registry.set("poi", make_record())
        registry.set_current_style("poi", make_style("night"))
        assert registry.get("poi").current_style.metadata.style_id == "night"
        assert q.get_nowait()["data"] == {"layer_id": "poi", "style_id": "night"}

    def test_set_current_style_unknown_layer(self, registry):
        with pytest.raises(KeyError):
            registry.set_current_style("ghost", make_style())

    def test_snapshot(self, registry):
        registry.set("zones", make_record("zones", "MultiPolygon", feature_count=3, z_index=40))
        registry.set_current_style("zones", make_style(integrated=True))
        snap = registry.snapshot("zones")
        assert snap["geometry"] == "polygon"
        assert snap["geometry_type"] == "MultiPolygon"
        assert snap["feature_count"] == 3
        assert snap["z_index"] == 40
        assert snap["visible"] is False
        assert snap["style_key"] == "p:poi:default"
        assert snap["has_integrated_labels"] is True
        assert registry.snapshot("missing") is None


@pytest.mark.unit
class TestRegistryView:

    def test_view_reads_snapshots(self, registry):
        registry.set("a", make_record("a"))
        view = registry.view()
        assert view.get("a")["id"] == "a"
        assert isinstance(view.get("a"), dict)
        seen = []
        view.for_each(lambda snap, layer_id: seen.append(snap["label"]))
        assert seen == ["A"]

    def test_view_cannot_write_records(self, registry):
        view = registry.view()
        assert not hasattr(view, "set")
        assert not hasattr(view, "delete")

    def test_view_toggles_visibility(self, registry):
        registry.set("a", make_record("a"))
        registry.view().set_visibility("a", True)
        assert registry.get("a").visible is True

    def test_snapshot_mutation_does_not_leak(self, registry):
        registry.set("a", make_record("a"))
        snap = registry.view().snapshot("a")
        snap["visible"] = True
        assert registry.get("a").visible is False
