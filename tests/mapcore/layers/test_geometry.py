"""Tests for geometry helpers: flattening, centroids, bounds and z-order."""
from __future__ import annotations

import pytest

from mapcore.layers.geometry import (
    MAX_LAYER_Z_INDEX,
    MIN_LAYER_Z_INDEX,
    auto_z_index,
    clamp_z_index,
    dominant_geometry_type,
    features_bounds,
    flatten_coordinates,
    geometry_kind,
    merge_bounds,
    vertex_centroid,
)


def _f(geometry_type, coordinates):
    return {"type": "Feature", "geometry": {"type": geometry_type, "coordinates": coordinates}, "properties": {}}


@pytest.mark.unit
class TestCoordinates:

    def test_flatten_nested(self):
        coords = [[[[0, 0], [1, 1]]], [[[2, 2, 5]]]]
        assert flatten_coordinates(coords, "MultiPolygon") == [[0, 0], [1, 1], [2, 2, 5]]

    def test_flatten_point(self):
        assert flatten_coordinates([3, 4], "Point") == [[3, 4]]
        assert flatten_coordinates("bad") == []

    def test_vertex_centroid_counts_closing_vertex(self):
        ring = [[0, 0], [4, 0], [4, 4], [0, 4], [0, 0]]
        lat, lng = vertex_centroid({"type": "Polygon", "coordinates": [ring]})
        assert lat == pytest.approx(1.6)
        assert lng == pytest.approx(1.6)

    def test_vertex_centroid_empty(self):
        assert vertex_centroid({"type": "LineString", "coordinates": []}) is None
        assert vertex_centroid(None) is None

    def test_oversized_vertices_are_dropped(self):
        coords = [[0, 0], [10 ** 400, 1], [2, float("inf")], [4, 2]]
        assert flatten_coordinates(coords, "LineString") == [[0, 0], [4, 2]]
        lat, lng = vertex_centroid({"type": "LineString", "coordinates": coords})
        assert (lat, lng) == (1.0, 2.0)
        assert vertex_centroid({"type": "LineString", "coordinates": [[10 ** 400, 0], [10 ** 400, 1]]}) is None


@pytest.mark.unit
class TestGeometryTypes:

    def test_dominant_type_collapses_multi(self):
        features = [_f("Point", [0, 0]), _f("MultiPoint", [[0, 0]]), _f("LineString", [[0, 0], [1, 1]])]
        assert dominant_geometry_type(features) == "Point"

    def test_dominant_type_tie_goes_to_first(self):
        features = [_f("Polygon", [[[0, 0]]]), _f("Point", [0, 0])]
        assert dominant_geometry_type(features) == "Polygon"

    def test_dominant_type_empty(self):
        assert dominant_geometry_type([]) == "Unknown"

    @pytest.mark.parametrize("geometry_type,kind", [
        ("Point", "point"),
        ("MultiLineString", "line"),
        ("MultiPolygon", "polygon"),
        ("polygon", "polygon"),
        ("GeometryCollection", "unknown"),
        (None, "unknown"),
    ])
    def test_geometry_kind(self, geometry_type, kind):
        assert geometry_kind(geometry_type) == kind


@pytest.mark.unit
class TestBounds:

    def test_features_bounds(self):
        features = [_f("Point", [2.0, 48.0]), _f("LineString", [[1.0, 47.0], [3.0, 49.5]])]
        assert features_bounds(features) == (47.0, 1.0, 49.5, 3.0)

    def test_features_bounds_none(self):
        assert features_bounds([]) is None
        assert features_bounds([{"type": "Feature", "geometry": None}]) is None

    def test_features_bounds_skip_oversized_vertices(self):
        features = [_f("LineString", [[10 ** 400, 0], [1.0, 47.0]]), _f("Point", [10 ** 400, 3])]
        assert features_bounds(features) == (47.0, 1.0, 47.0, 1.0)

    def test_merge_bounds_ignores_none(self):
        assert merge_bounds([(0, 0, 1, 1), None, (-1, 2, 0.5, 3)]) == (-1, 0, 1, 3)
        assert merge_bounds([None]) is None


@pytest.mark.unit
class TestZIndex:

    @pytest.mark.parametrize("value,expected", [
        (150, MAX_LAYER_Z_INDEX),
        (-3, MIN_LAYER_Z_INDEX),
        (42.9, 42),
        (float("inf"), MAX_LAYER_Z_INDEX),
        (float("-inf"), MIN_LAYER_Z_INDEX),
    ])
    def test_clamp(self, value, expected):
        assert clamp_z_index(value) == expected

    def test_auto_z_index(self):
        assert auto_z_index(0) == 99
        assert auto_z_index(5) == 94
        assert auto_z_index(500) == 0
