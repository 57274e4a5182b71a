"""Feature normalizer: JSON records, GeoJSON features, GPX waypoints and
route stops into one ``NormalizedPOI`` shape.

One normalizer per source type sits behind ``normalize_feature``, which
dispatches on the declared type and falls back to structural detection
when the type is unknown. Normalizers never raise: a ``None`` input
yields ``None``.
"""

from __future__ import annotations

import itertools
import math
from typing import Any, Callable, Mapping

from loguru import logger

from mapcore.config import settings
from mapcore.layers.geometry import vertex_centroid
from mapcore.layers.layer import NormalizedPOI, SourceType

_id_counter = itertools.count(1)


def generate_unique_id() -> str:
    """Monotonically increasing id for records that carry none."""
    return f"poi_{next(_id_counter)}"


def _to_coordinate(value: Any) -> float | None:
    """Finite float or None. Never NaN."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _first(*values: Any) -> Any:
    """First value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _mapped_key(mapping: Mapping, key: str) -> str:
    # Dotted paths ("properties.name") resolve to their last segment
    field = mapping.get(key) or key
    return field.rsplit(".", 1)[-1] if isinstance(field, str) else key


def _title(value: Any, options: Mapping) -> str:
    text = str(value) if value is not None else ""
    return text or options.get("default_title") or settings.default_poi_title


def _data_mapping(layer_config: Mapping | None) -> Mapping:
    if not layer_config:
        return {}
    mapping = layer_config.get("dataMapping") or layer_config.get("data_mapping")
    return mapping if isinstance(mapping, Mapping) else {}


def _optional_str(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)


# ---------------------------------------------------------------------------
# Per-source normalizers
# ---------------------------------------------------------------------------

def normalize_from_json(
    data: Mapping | None,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> NormalizedPOI | None:
    """Normalize a flat JSON record."""
    if not isinstance(data, Mapping):
        return None
    options = options or {}
    mapping = _data_mapping(layer_config)

    title_key = _mapped_key(mapping, "title")
    desc_key = _mapped_key(mapping, "description")
    lat_key = _mapped_key(mapping, "lat")
    lng_key = _mapped_key(mapping, "lng")
    cat_key = _mapped_key(mapping, "categoryId")
    sub_key = _mapped_key(mapping, "subCategoryId")

    lat = data.get(lat_key)
    if lat is None:
        lat = _first(data.get("latitude"), data.get("y"))
    lng = data.get(lng_key)
    if lng is None:
        lng = _first(data.get("longitude"), data.get("lon"), data.get("x"))

    return NormalizedPOI(
        id=str(_first(data.get("id"), data.get("uid"), data.get("guid")) or generate_unique_id()),
        source_type=SourceType.JSON,
        geometry_type="Point",
        title=_title(
            _first(data.get(title_key), data.get("title"), data.get("name"), data.get("label")),
            options,
        ),
        description=str(
            _first(data.get(desc_key), data.get("description"), data.get("shortDescription")) or ""
        ),
        lat=_to_coordinate(lat),
        lng=_to_coordinate(lng),
        category_id=_optional_str(_first(data.get(cat_key), data.get("categoryId"), data.get("category"))),
        sub_category_id=_optional_str(
            _first(data.get(sub_key), data.get("subCategoryId"), data.get("subcategory"))
        ),
        attributes=dict(data),
    )


def normalize_from_geojson(
    feature: Mapping | None,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> NormalizedPOI | None:
    """Normalize a GeoJSON Feature.

    Point coordinates are swapped from [lng, lat] to lat/lng. Other
    geometries use ``options["handle"].get_center()`` when a rendering
    handle is supplied, otherwise the mean of every vertex.

    ``options["source_type"]`` tags features that were converted from
    another format (GPX, JSON) before reaching this normalizer.
    """
    if not isinstance(feature, Mapping):
        return None
    options = options or {}
    mapping = _data_mapping(layer_config)
    props = feature.get("properties")
    props = props if isinstance(props, Mapping) else {}
    geometry = feature.get("geometry")
    geometry = geometry if isinstance(geometry, Mapping) else {}
    geometry_type = geometry.get("type") or "Unknown"

    lat = lng = None
    coordinates = geometry.get("coordinates")
    handle = options.get("handle")
    if geometry_type == "Point" and isinstance(coordinates, (list, tuple)) and len(coordinates) >= 2:
        lng, lat = coordinates[0], coordinates[1]
    elif handle is not None and callable(getattr(handle, "get_center", None)):
        center = handle.get_center()
        if center:
            lat, lng = center[0], center[1]
    elif coordinates:
        center = vertex_centroid(dict(geometry))
        if center:
            lat, lng = center

    title_key = _mapped_key(mapping, "title")
    desc_key = _mapped_key(mapping, "description")
    cat_key = _mapped_key(mapping, "categoryId")
    sub_key = _mapped_key(mapping, "subCategoryId")

    return NormalizedPOI(
        id=str(
            _first(feature.get("id"), props.get("id"), props.get("uid"), props.get("guid"))
            or generate_unique_id()
        ),
        source_type=SourceType(options.get("source_type", SourceType.GEOJSON)),
        geometry_type=str(geometry_type),
        title=_title(
            _first(props.get(title_key), props.get("name"), props.get("title"), props.get("label")),
            options,
        ),
        description=str(
            _first(props.get(desc_key), props.get("description"), props.get("shortDescription")) or ""
        ),
        lat=_to_coordinate(lat),
        lng=_to_coordinate(lng),
        category_id=_optional_str(_first(props.get(cat_key), props.get("categoryId"), props.get("category"))),
        sub_category_id=_optional_str(
            _first(props.get(sub_key), props.get("subCategoryId"), props.get("subcategory"))
        ),
        attributes=dict(props),
    )


def normalize_from_gpx(
    waypoint: Mapping | None,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> NormalizedPOI | None:
    """Normalize a GPX waypoint dict (``lat``/``lon``/``name``/``desc``/``sym``)."""
    if not isinstance(waypoint, Mapping):
        return None
    options = options or {}
    return NormalizedPOI(
        id=str(_first(waypoint.get("id"), waypoint.get("name"), waypoint.get("sym")) or generate_unique_id()),
        source_type=SourceType.GPX,
        geometry_type="Point",
        title=_title(_first(waypoint.get("name"), waypoint.get("cmt")), options),
        description=str(_first(waypoint.get("desc"), waypoint.get("cmt")) or ""),
        lat=_to_coordinate(waypoint.get("lat")),
        lng=_to_coordinate(waypoint.get("lon")),
        category_id=_optional_str(waypoint.get("type")),
        attributes=dict(waypoint),
    )


def normalize_from_route(
    stop: Mapping | None,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> NormalizedPOI | None:
    """Normalize a route stop (``latLng`` object or ``lat``/``lng`` pair)."""
    if not isinstance(stop, Mapping):
        return None
    options = options or {}
    lat = lng = None
    lat_lng = stop.get("latLng")
    if isinstance(lat_lng, Mapping):
        lat, lng = lat_lng.get("lat"), lat_lng.get("lng")
    elif stop.get("lat") is not None and stop.get("lng") is not None:
        lat, lng = stop.get("lat"), stop.get("lng")

    order = stop.get("order")
    return NormalizedPOI(
        id=str(_first(stop.get("id"), stop.get("placeId")) or generate_unique_id()),
        source_type=SourceType.ROUTE,
        geometry_type="Point",
        title=_title(_first(stop.get("name"), stop.get("title"), stop.get("address")), options),
        description=str(_first(stop.get("description"), stop.get("comment")) or ""),
        lat=_to_coordinate(lat),
        lng=_to_coordinate(lng),
        category_id=_optional_str(stop.get("type")) or "route-point",
        sub_category_id=f"stop-{order}" if order is not None else None,
        attributes=dict(stop),
    )


_NORMALIZERS: dict[SourceType, Callable[..., NormalizedPOI | None]] = {
    SourceType.JSON: normalize_from_json,
    SourceType.GEOJSON: normalize_from_geojson,
    SourceType.GPX: normalize_from_gpx,
    SourceType.ROUTE: normalize_from_route,
}


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def detect_source_type(data: Mapping) -> SourceType:
    """Guess the source type of a raw record from its shape."""
    if data.get("type") == "Feature" and data.get("geometry"):
        return SourceType.GEOJSON
    if data.get("lat") is not None and data.get("lon") is not None and (data.get("name") or data.get("sym")):
        return SourceType.GPX
    if data.get("latLng") or (data.get("order") is not None and data.get("address")):
        return SourceType.ROUTE
    return SourceType.JSON


def normalize_feature(
    source_type: SourceType | str | None,
    data: Any,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> NormalizedPOI | None:
    """Normalize one raw record according to its source type.

    Unknown source types are auto-detected from the record's shape.
    """
    if data is None:
        logger.warning("Normalizer received an empty record")
        return None
    if not isinstance(data, Mapping):
        logger.warning(f"Normalizer expects a mapping, got {type(data).__name__}")
        return None

    try:
        kind = SourceType(source_type)
    except ValueError:
        logger.debug(f"Unrecognized source type {source_type!r}; detecting from shape")
        kind = detect_source_type(data)
    return _NORMALIZERS[kind](data, layer_config, options)


def normalize_collection(
    source_type: SourceType | str | None,
    records: Any,
    layer_config: Mapping | None = None,
    options: Mapping | None = None,
) -> list[NormalizedPOI]:
    """Normalize a list of records, dropping the ones that yield None."""
    if not isinstance(records, list):
        logger.warning("normalize_collection expects a list")
        return []
    pois = (normalize_feature(source_type, record, layer_config, options) for record in records)
    return [poi for poi in pois if poi is not None]
