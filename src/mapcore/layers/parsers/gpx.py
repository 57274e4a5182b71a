"""Parse GPX 1.1 XML into a GeoJSON FeatureCollection using xml.etree.ElementTree.

Handles wpt (waypoint), trk/trkseg/trkpt (one LineString per segment)
and rte/rtept. Extracts name, desc, sym, time, ele and flattens any
child of <extensions> into properties, accumulating repeated
``tag``/``tags`` children into a ``tags`` list.

GPX uses lat/lon attributes on elements (latitude first).
Coordinates are emitted as [lng, lat] or [lng, lat, ele] (GeoJSON convention).
"""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET

from mapcore.layers.errors import ParseError


def parse_gpx(gpx_string: str | bytes) -> dict:
    """Parse a GPX XML string into a FeatureCollection dict.

    Raises:
        ParseError: if the payload is empty or not well-formed XML.
    """
    if not gpx_string:
        raise ParseError("Empty GPX payload")
    try:
        root = ET.fromstring(gpx_string)
    except ET.ParseError as e:
        raise ParseError(f"Malformed GPX: {e}") from e

    ns = _detect_namespace(root)
    features: list[dict] = []

    for idx, wpt in enumerate(_find_all(root, "wpt", ns)):
        feature = _parse_waypoint(wpt, ns, idx)
        if feature is not None:
            features.append(feature)

    for idx, trk in enumerate(_find_all(root, "trk", ns)):
        features.extend(_parse_track(trk, ns, idx))

    for idx, rte in enumerate(_find_all(root, "rte", ns)):
        feature = _parse_route(rte, ns, idx)
        if feature is not None:
            features.append(feature)

    return {"type": "FeatureCollection", "features": features}


def _detect_namespace(root: ET.Element) -> str:
    """Detect GPX namespace from root tag."""
    tag = root.tag
    if "{" in tag:
        return tag.split("}")[0] + "}"
    return ""


def _find_all(parent: ET.Element, tag: str, ns: str) -> list[ET.Element]:
    """Find all direct children with the given tag."""
    full_tag = f"{ns}{tag}" if ns else tag
    return parent.findall(full_tag)


def _get_child_text(parent: ET.Element, tag: str, ns: str) -> str:
    """Get text of a direct child element."""
    full_tag = f"{ns}{tag}" if ns else tag
    elem = parent.find(full_tag)
    if elem is not None and elem.text:
        return elem.text.strip()
    return ""


def _parse_position(elem: ET.Element, ns: str) -> list[float]:
    """Extract [lng, lat] or [lng, lat, ele] from an element with lat/lon attributes."""
    try:
        lat = float(elem.get("lat", ""))
        lon = float(elem.get("lon", ""))
    except (ValueError, TypeError):
        return []
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return []

    ele_text = _get_child_text(elem, "ele", ns)
    if ele_text:
        try:
            return [lon, lat, float(ele_text)]
        except ValueError:
            pass
    return [lon, lat]


def _parse_extensions(parent: ET.Element, ns: str) -> dict:
    """Flatten <extensions> children into a properties dict."""
    ext = parent.find(f"{ns}extensions" if ns else "extensions")
    if ext is None:
        return {}

    props: dict = {}
    tags: list[str] = []
    for child in ext:
        key = child.tag.split("}")[-1].split(":")[-1]
        value = (child.text or "").strip()
        if key in ("tag", "tags"):
            if value:
                tags.append(value)
        else:
            props[key] = value
    if tags:
        props["tags"] = tags
    return props


def _parse_waypoint(wpt: ET.Element, ns: str, idx: int) -> dict | None:
    """Parse a wpt element into a Point feature."""
    coords = _parse_position(wpt, ns)
    if not coords:
        return None

    name = _get_child_text(wpt, "name", ns)
    ext = _parse_extensions(wpt, ns)
    feature_id = ext.get("id") or name or f"wpt-{idx}"

    properties = {
        "id": feature_id,
        "title": name or f"Waypoint {idx + 1}",
        "description": _get_child_text(wpt, "desc", ns),
        "symbol": _get_child_text(wpt, "sym", ns),
    }
    time_str = _get_child_text(wpt, "time", ns)
    if time_str:
        properties["time"] = time_str
    properties.update(ext)

    return {
        "type": "Feature",
        "id": feature_id,
        "geometry": {"type": "Point", "coordinates": coords},
        "properties": properties,
    }


def _parse_track(trk: ET.Element, ns: str, idx: int) -> list[dict]:
    """Parse a trk element into one LineString feature per trkseg."""
    name = _get_child_text(trk, "name", ns)
    desc = _get_child_text(trk, "desc", ns)
    ext = _parse_extensions(trk, ns)

    features: list[dict] = []
    for seg_idx, seg in enumerate(_find_all(trk, "trkseg", ns)):
        coordinates: list[list[float]] = []
        timestamps: list[str] = []
        for trkpt in _find_all(seg, "trkpt", ns):
            coord = _parse_position(trkpt, ns)
            if coord:
                coordinates.append(coord)
                timestamps.append(_get_child_text(trkpt, "time", ns))

        if not coordinates:
            continue

        feature_id = f"{name}-{seg_idx}" if name else f"trk-{idx}-{seg_idx}"
        properties = {
            "id": feature_id,
            "title": name or f"Track {idx + 1}",
            "description": desc,
            "segmentIndex": seg_idx,
            "pointCount": len(coordinates),
        }
        if any(timestamps):
            properties["timestamps"] = timestamps
        properties.update(ext)

        features.append({
            "type": "Feature",
            "id": feature_id,
            "geometry": {"type": "LineString", "coordinates": coordinates},
            "properties": properties,
        })
    return features


def _parse_route(rte: ET.Element, ns: str, idx: int) -> dict | None:
    """Parse a rte element into a LineString feature."""
    coordinates = [
        coord
        for coord in (_parse_position(pt, ns) for pt in _find_all(rte, "rtept", ns))
        if coord
    ]
    if not coordinates:
        return None

    name = _get_child_text(rte, "name", ns)
    feature_id = name or f"rte-{idx}"
    properties = {
        "id": feature_id,
        "title": name or f"Route {idx + 1}",
        "description": _get_child_text(rte, "desc", ns),
        "pointCount": len(coordinates),
    }
    properties.update(_parse_extensions(rte, ns))

    return {
        "type": "Feature",
        "id": feature_id,
        "geometry": {"type": "LineString", "coordinates": coordinates},
        "properties": properties,
    }
