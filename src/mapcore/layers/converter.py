"""Format auto-conversion: any supported payload to a GeoJSON FeatureCollection.

GeoJSON passes through, GPX text goes through the GPX parser, and any
other JSON goes through the record converters.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from mapcore.layers.layer import SourceType
from mapcore.layers.parsers.geojson import decode_json, empty_collection, is_geojson, parse_geojson
from mapcore.layers.parsers.gpx import parse_gpx
from mapcore.layers.parsers.records import convert_records


def looks_like_xml(text: str | bytes) -> bool:
    if isinstance(text, bytes):
        return text.lstrip().startswith(b"<")
    return text.lstrip().startswith("<")


def auto_convert(
    payload: Any, is_gpx: bool = False, default_title: str | None = None
) -> tuple[dict, SourceType]:
    """Convert ``payload`` and report which format it came from.

    Args:
        payload: Decoded JSON (dict or list), or raw text/bytes.
        is_gpx: Force GPX parsing of a text payload.
        default_title: Title for JSON records that carry none.

    Returns:
        ``(feature_collection, source_type)``. Unrecognized payloads
        yield an empty collection tagged as JSON.

    Raises:
        ParseError: malformed GPX or JSON text.
    """
    if isinstance(payload, (str, bytes)):
        if is_gpx or looks_like_xml(payload):
            return parse_gpx(payload), SourceType.GPX
        payload = decode_json(payload)

    if payload is None:
        logger.warning("No data to convert")
        return empty_collection(), SourceType.JSON

    if is_geojson(payload):
        return parse_geojson(payload), SourceType.GEOJSON

    if isinstance(payload, (list, dict)):
        return convert_records(payload, default_title), SourceType.JSON

    logger.warning(f"Unsupported payload type {type(payload).__name__}; nothing converted")
    return empty_collection(), SourceType.JSON
