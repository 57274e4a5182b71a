"""Convert generic JSON records into GeoJSON FeatureCollections.

Supported shapes:
  - POI arrays: ``latlng`` as [lat, lng] or ``location`` as {lat, lng}
  - route arrays: ``geometry`` of type LineString
  - zone arrays: ``geometry`` of type Polygon
  - flat records (one object or a list): ``lat``/``lng`` (or
    ``latitude``/``longitude``, ``lon``) next to the other attributes

Records that cannot be placed on the map are skipped with a warning.
"""

from __future__ import annotations

import math
from typing import Any

from loguru import logger

from mapcore.config import settings

_LAT_KEYS = ("lat", "latitude")
_LNG_KEYS = ("lng", "lon", "longitude")


def _collection(features: list[dict]) -> dict:
    return {"type": "FeatureCollection", "features": features}


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _pick(record: dict, keys: tuple[str, ...]) -> tuple[str | None, float | None]:
    for key in keys:
        if key in record:
            return key, _number(record[key])
    return None, None


def is_flat_record(record: Any) -> bool:
    """True for an object that carries its own lat/lng pair."""
    if not isinstance(record, dict):
        return False
    return _pick(record, _LAT_KEYS)[0] is not None and _pick(record, _LNG_KEYS)[0] is not None


def convert_poi_array(pois: list, default_title: str | None = None) -> dict:
    """POIs with ``latlng`` [lat, lng] or ``location`` {lat, lng}."""
    default_title = default_title or settings.default_poi_title
    features = []
    for poi in pois:
        if not isinstance(poi, dict):
            continue
        if not poi.get("id"):
            logger.warning(f"POI without id skipped: {poi!r:.80}")
            continue

        latlng = poi.get("latlng")
        location = poi.get("location")
        if isinstance(latlng, list) and len(latlng) == 2:
            coordinates = [latlng[1], latlng[0]]
        elif isinstance(location, dict) and _number(location.get("lat")) is not None \
                and _number(location.get("lng")) is not None:
            coordinates = [location["lng"], location["lat"]]
        else:
            logger.warning(f"POI {poi['id']} has no usable coordinates; skipped")
            continue

        attributes = poi.get("attributes") if isinstance(poi.get("attributes"), dict) else {}
        features.append({
            "type": "Feature",
            "id": poi["id"],
            "geometry": {"type": "Point", "coordinates": coordinates},
            "properties": {
                "id": poi["id"],
                "title": poi.get("title") or default_title,
                "description": poi.get("description") or "",
                **attributes,
            },
        })
    logger.debug(f"Converted POI array: {len(pois)} in, {len(features)} out")
    return _collection(features)


def _convert_shapes(records: list, geometry_type: str, kind: str, default_title: str | None) -> list[dict]:
    default_title = default_title or settings.default_poi_title
    features = []
    for record in records:
        if not isinstance(record, dict):
            continue
        if not record.get("id"):
            logger.warning(f"{kind} without id skipped")
            continue
        geometry = record.get("geometry")
        if not isinstance(geometry, dict) or geometry.get("type") != geometry_type \
                or not isinstance(geometry.get("coordinates"), list):
            logger.warning(f"{kind} {record['id']} has no valid {geometry_type} geometry; skipped")
            continue

        attributes = record.get("attributes") if isinstance(record.get("attributes"), dict) else {}
        properties = {
            "id": record["id"],
            "title": record.get("title") or record.get("siteName") or default_title,
            "description": record.get("description") or "",
        }
        for key in ("categoryId", "subCategoryId"):
            if record.get(key) is not None:
                properties[key] = record[key]
        properties.update(attributes)

        features.append({
            "type": "Feature",
            "id": record["id"],
            "geometry": {"type": geometry_type, "coordinates": geometry["coordinates"]},
            "properties": properties,
        })
    return features


def convert_route_array(routes: list, default_title: str | None = None) -> dict:
    """Routes carrying a LineString geometry."""
    features = _convert_shapes(routes, "LineString", "Route", default_title)
    logger.debug(f"Converted route array: {len(routes)} in, {len(features)} out")
    return _collection(features)


def convert_zone_array(zones: list, default_title: str | None = None) -> dict:
    """Zones carrying a Polygon geometry."""
    features = _convert_shapes(zones, "Polygon", "Zone", default_title)
    logger.debug(f"Converted zone array: {len(zones)} in, {len(features)} out")
    return _collection(features)


def convert_flat_records(records: list) -> dict:
    """Flat objects with their own lat/lng become Point features.

    Every other field is copied unchanged into ``properties``.
    """
    features = []
    for idx, record in enumerate(records):
        if not isinstance(record, dict):
            continue
        lat_key, lat = _pick(record, _LAT_KEYS)
        lng_key, lng = _pick(record, _LNG_KEYS)
        if lat is None or lng is None:
            logger.warning(f"Record {record.get('id', idx)} has no numeric lat/lng; skipped")
            continue

        properties = {k: v for k, v in record.items() if k not in (lat_key, lng_key)}
        feature = {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [lng, lat]},
            "properties": properties,
        }
        if record.get("id") is not None:
            feature["id"] = record["id"]
        features.append(feature)
    logger.debug(f"Converted flat records: {len(records)} in, {len(features)} out")
    return _collection(features)


def convert_records(data: Any, default_title: str | None = None) -> dict:
    """Detect the record shape from the first item and convert.

    ``default_title`` replaces a missing POI, route or zone title and
    defaults to ``settings.default_poi_title``.
    """
    if isinstance(data, dict):
        if is_flat_record(data):
            return convert_flat_records([data])
        logger.warning("JSON object is neither GeoJSON nor a flat lat/lng record")
        return _collection([])

    if not isinstance(data, list) or not data:
        logger.warning("JSON payload is not a non-empty array")
        return _collection([])

    first = data[0]
    if not isinstance(first, dict):
        logger.warning("First JSON record is not an object")
        return _collection([])

    geometry = first.get("geometry") if isinstance(first.get("geometry"), dict) else {}
    if first.get("latlng") or isinstance(first.get("location"), dict):
        return convert_poi_array(data, default_title)
    if geometry.get("type") == "LineString":
        return convert_route_array(data, default_title)
    if geometry.get("type") == "Polygon":
        return convert_zone_array(data, default_title)
    if is_flat_record(first):
        return convert_flat_records(data)

    logger.warning("Unrecognized JSON record shape")
    return _collection([])
