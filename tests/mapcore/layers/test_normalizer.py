"""Tests for the feature normalizer: every source type into NormalizedPOI."""
from __future__ import annotations

import math

import pytest

from mapcore.layers.layer import SourceType
from mapcore.layers.normalizer import (
    detect_source_type,
    generate_unique_id,
    normalize_collection,
    normalize_feature,
    normalize_from_geojson,
    normalize_from_gpx,
    normalize_from_json,
    normalize_from_route,
)


@pytest.mark.unit
class TestNormalizeFromGeojson:

    def test_point_coordinates_are_swapped(self):
        """GeoJSON [lng, lat] becomes lat/lng fields."""
        feature = {
            "type": "Feature",
            "id": "f1",
            "geometry": {"type": "Point", "coordinates": [-1.55, 47.21]},
            "properties": {"name": "Harbor", "description": "Old port"},
        }
        poi = normalize_from_geojson(feature)
        assert poi.id == "f1"
        assert poi.lat == 47.21
        assert poi.lng == -1.55
        assert poi.title == "Harbor"
        assert poi.description == "Old port"
        assert poi.geometry_type == "Point"
        assert poi.source_type is SourceType.GEOJSON

    def test_polygon_uses_vertex_mean(self):
        feature = {
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[0, 0], [2, 0], [2, 2], [0, 2]]],
            },
            "properties": {"title": "Square"},
        }
        poi = normalize_from_geojson(feature)
        assert poi.lat == 1.0
        assert poi.lng == 1.0

    def test_handle_center_wins_over_vertices(self):
        class Handle:
            def get_center(self):
                return (10.0, 20.0)

        feature = {
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": [[0, 0], [4, 4]]},
            "properties": {"name": "Line"},
        }
        poi = normalize_from_geojson(feature, options={"handle": Handle()})
        assert (poi.lat, poi.lng) == (10.0, 20.0)

    def test_id_falls_back_to_properties_then_generated(self):
        with_prop_id = {"type": "Feature", "geometry": None, "properties": {"id": "p-7", "name": "x"}}
        assert normalize_from_geojson(with_prop_id).id == "p-7"

        anonymous = {"type": "Feature", "geometry": None, "properties": {"name": "x"}}
        assert normalize_from_geojson(anonymous).id.startswith("poi_")

    def test_missing_title_uses_default(self):
        feature = {"type": "Feature", "geometry": None, "properties": {}}
        assert normalize_from_geojson(feature).title == "Untitled"
        assert normalize_from_geojson(feature, options={"default_title": "Sans nom"}).title == "Sans nom"

    def test_data_mapping_renames_fields(self):
        feature = {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [1, 2]},
            "properties": {"nom": "Gare", "cat": "transport"},
        }
        config = {"dataMapping": {"title": "properties.nom", "categoryId": "cat"}}
        poi = normalize_from_geojson(feature, config)
        assert poi.title == "Gare"
        assert poi.category_id == "transport"

    def test_source_type_option_tags_converted_features(self):
        feature = {"type": "Feature", "geometry": None, "properties": {"name": "wpt"}}
        poi = normalize_from_geojson(feature, options={"source_type": SourceType.GPX})
        assert poi.source_type is SourceType.GPX

    def test_non_finite_coordinates_become_none(self):
        feature = {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": ["abc", float("nan")]},
            "properties": {"name": "bad"},
        }
        poi = normalize_from_geojson(feature)
        assert poi.lat is None
        assert poi.lng is None

    def test_attributes_are_a_copy(self):
        props = {"name": "x", "rating": 4}
        poi = normalize_from_geojson({"type": "Feature", "geometry": None, "properties": props})
        poi.attributes["rating"] = 0
        assert props["rating"] == 4


@pytest.mark.unit
class TestOtherSources:

    def test_json_record(self):
        poi = normalize_from_json({"id": 3, "name": "Cafe", "latitude": "47.1", "lon": -1.2, "category": "food"})
        assert poi.id == "3"
        assert poi.title == "Cafe"
        assert poi.lat == 47.1
        assert poi.lng == -1.2
        assert poi.category_id == "food"
        assert poi.source_type is SourceType.JSON

    def test_gpx_waypoint(self):
        poi = normalize_from_gpx({"lat": 45.0, "lon": 6.0, "name": "Summit", "desc": "Top", "type": "peak"})
        assert poi.id == "Summit"
        assert poi.description == "Top"
        assert (poi.lat, poi.lng) == (45.0, 6.0)
        assert poi.category_id == "peak"

    def test_route_stop(self):
        poi = normalize_from_route({"placeId": "s1", "address": "1 Main St", "latLng": {"lat": 1, "lng": 2}, "order": 3})
        assert poi.id == "s1"
        assert poi.title == "1 Main St"
        assert poi.category_id == "route-point"
        assert poi.sub_category_id == "stop-3"
        assert poi.source_type is SourceType.ROUTE

    def test_none_input_yields_none(self):
        assert normalize_from_json(None) is None
        assert normalize_from_geojson(None) is None
        assert normalize_from_gpx(None) is None
        assert normalize_from_route(None) is None


@pytest.mark.unit
class TestDispatch:

    def test_dispatch_by_declared_type(self):
        poi = normalize_feature("gpx", {"lat": 1, "lon": 2, "name": "w"})
        assert poi.source_type is SourceType.GPX

    def test_unknown_type_detects_shape(self):
        feature = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {}}
        assert normalize_feature("kml", feature).source_type is SourceType.GEOJSON
        assert normalize_feature(None, {"latLng": {"lat": 0, "lng": 0}}).source_type is SourceType.ROUTE

    def test_detect_source_type_defaults_to_json(self):
        assert detect_source_type({"foo": "bar"}) is SourceType.JSON
        assert detect_source_type({"lat": 1, "lon": 2, "sym": "flag"}) is SourceType.GPX

    def test_non_mapping_input(self):
        assert normalize_feature("json", None) is None
        assert normalize_feature("json", [1, 2]) is None

    def test_collection_drops_invalid_entries(self):
        pois = normalize_collection("json", [{"id": 1}, None, "text", {"id": 2}])
        assert [p.id for p in pois] == ["1", "2"]
        assert normalize_collection("json", {"id": 1}) == []

    def test_generated_ids_are_unique(self):
        ids = {generate_unique_id() for _ in range(50)}
        assert len(ids) == 50

    def test_coordinates_never_nan(self):
        poi = normalize_feature("json", {"lat": "inf", "lng": None})
        assert poi.lat is None or math.isfinite(poi.lat)
        assert poi.lng is None

    def test_oversized_integer_coordinates_become_none(self):
        point = {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [10 ** 400, 1]},
            "properties": {"name": "far"},
        }
        poi = normalize_feature("geojson", point)
        assert poi.lng is None
        assert poi.lat == 1.0
        assert normalize_feature("json", {"lat": 10 ** 400, "lng": 2}).lat is None

    def test_oversized_vertices_are_left_out_of_the_centroid(self):
        line = {
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": [[10 ** 400, 0], [10 ** 400, 1]]},
            "properties": {"name": "far"},
        }
        poi = normalize_feature("geojson", line)
        assert (poi.lat, poi.lng) == (None, None)

    def test_default_title_option(self):
        poi = normalize_feature("json", {"lat": 1, "lng": 2}, options={"default_title": "Sans nom"})
        assert poi.title == "Sans nom"
