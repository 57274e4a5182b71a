"""Geometry helpers: coordinate flattening, centroids, bounds, z-order.

All input coordinates are GeoJSON convention ([lng, lat] or [lng, lat, alt]).
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable

from mapcore.layers.layer import Bounds

MIN_LAYER_Z_INDEX = 0
MAX_LAYER_Z_INDEX = 99

_BASE_TYPES = {
    "Point": "Point",
    "MultiPoint": "Point",
    "LineString": "LineString",
    "MultiLineString": "LineString",
    "Polygon": "Polygon",
    "MultiPolygon": "Polygon",
}


def _coordinate(value) -> float | None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _position(value) -> list[float] | None:
    """[lng, lat, ...] as finite floats, or None when it is not a usable position."""
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    head = [_coordinate(v) for v in value[:2]]
    if None in head:
        return None
    return head + list(value[2:])


def _is_position(value) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value[:2])
    )


def flatten_coordinates(coordinates, geometry_type: str | None = None) -> list[list[float]]:
    """Flatten nested GeoJSON coordinates into a list of finite positions.

    Positions whose lng or lat does not fit a finite float are dropped.
    """
    if not isinstance(coordinates, (list, tuple)):
        return []
    if geometry_type == "Point" or _is_position(coordinates):
        position = _position(coordinates)
        return [position] if position else []

    flat: list[list[float]] = []

    def _walk(arr) -> None:
        if _is_position(arr):
            position = _position(arr)
            if position:
                flat.append(position)
        elif isinstance(arr, (list, tuple)):
            for item in arr:
                _walk(item)

    _walk(coordinates)
    return flat


def vertex_centroid(geometry: dict) -> tuple[float, float] | None:
    """Return (lat, lng) as the arithmetic mean of every vertex.

    This is not an area centroid: for a polygon the closing vertex is
    counted twice and dense edges pull the point towards them.
    """
    if not isinstance(geometry, dict):
        return None
    flat = flatten_coordinates(geometry.get("coordinates"), geometry.get("type"))
    if not flat:
        return None
    count = len(flat)
    lng = sum(c[0] / count for c in flat)
    lat = sum(c[1] / count for c in flat)
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return lat, lng


def base_geometry_type(geometry_type: str | None) -> str:
    """Collapse Multi* types onto their base type."""
    return _BASE_TYPES.get(geometry_type or "", "Unknown")


def dominant_geometry_type(features: Iterable[dict]) -> str:
    """Most frequent base geometry type; ties go to the first one seen."""
    counts: Counter[str] = Counter()
    for feature in features:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if isinstance(geometry, dict) and geometry.get("type"):
            counts[base_geometry_type(geometry["type"])] += 1
    if not counts:
        return "Unknown"
    # Counter.most_common keeps insertion order between equal counts
    return counts.most_common(1)[0][0]


def features_bounds(features: Iterable[dict]) -> Bounds | None:
    """Extent of every vertex of every feature, or None when there are none."""
    lats: list[float] = []
    lngs: list[float] = []
    for feature in features:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geometry, dict):
            continue
        for position in flatten_coordinates(geometry.get("coordinates"), geometry.get("type")):
            lngs.append(position[0])
            lats.append(position[1])
    if not lats:
        return None
    return min(lats), min(lngs), max(lats), max(lngs)


def merge_bounds(bounds: Iterable[Bounds | None]) -> Bounds | None:
    """Union of several extents, ignoring None entries."""
    present = [b for b in bounds if b is not None]
    if not present:
        return None
    return (
        min(b[0] for b in present),
        min(b[1] for b in present),
        max(b[2] for b in present),
        max(b[3] for b in present),
    )


def clamp_z_index(z_index: float) -> int:
    """Floor and clamp an explicit z-index into [MIN, MAX]."""
    if not math.isfinite(z_index):
        return MAX_LAYER_Z_INDEX if z_index > 0 else MIN_LAYER_Z_INDEX
    return max(MIN_LAYER_Z_INDEX, min(MAX_LAYER_Z_INDEX, math.floor(z_index)))


def auto_z_index(layer_count: int) -> int:
    """Default z-index: each earlier layer pushes later ones one step down."""
    return max(MIN_LAYER_Z_INDEX, MAX_LAYER_Z_INDEX - layer_count)


_KINDS = {"Point": "point", "LineString": "line", "Polygon": "polygon"}


def geometry_kind(geometry_type: str | None) -> str:
    """Legend-facing kind: point, line, polygon or unknown.

    Accepts GeoJSON types (any Multi* variant) or an already lowercase kind.
    """
    if geometry_type in ("point", "line", "polygon"):
        return geometry_type
    return _KINDS.get(base_geometry_type(geometry_type), "unknown")
