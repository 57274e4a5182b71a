"""Parse GeoJSON (RFC 7946) into a FeatureCollection dict using stdlib json.

Accepts a FeatureCollection, a single Feature, or a bare list of
Features, either as already-decoded objects or as a JSON string.
Coordinates are left untouched in [lng, lat] order.
"""

from __future__ import annotations

import json
from typing import Any

from mapcore.layers.errors import ParseError


def empty_collection() -> dict:
    return {"type": "FeatureCollection", "features": []}


def decode_json(content: str | bytes) -> Any:
    """Decode a JSON document, raising ParseError on malformed input."""
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise ParseError(f"Malformed JSON: {e}") from e


def is_feature(raw: Any) -> bool:
    return isinstance(raw, dict) and raw.get("type") == "Feature"


def is_geojson(data: Any) -> bool:
    """True when ``data`` already has a GeoJSON shape."""
    if isinstance(data, dict):
        if data.get("type") == "FeatureCollection" and isinstance(data.get("features"), list):
            return True
        return is_feature(data) and "geometry" in data
    if isinstance(data, list) and data:
        return is_feature(data[0])
    return False


def parse_geojson(content: str | bytes | dict | list) -> dict:
    """Return a FeatureCollection dict for any GeoJSON-shaped input.

    Raises:
        ParseError: if ``content`` is a string that is not valid JSON, or
            the decoded value is not GeoJSON.
    """
    data = decode_json(content) if isinstance(content, (str, bytes)) else content

    if isinstance(data, dict) and data.get("type") == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            raise ParseError("FeatureCollection without a 'features' list")
        collection = {k: v for k, v in data.items() if k != "features"}
        collection["features"] = list(features)
        return collection

    if is_feature(data):
        return {"type": "FeatureCollection", "features": [data]}

    if isinstance(data, list) and all(is_feature(item) for item in data):
        return {"type": "FeatureCollection", "features": list(data)}

    raise ParseError("Input is not GeoJSON")
