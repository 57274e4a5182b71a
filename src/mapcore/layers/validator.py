"""Feature validator: structural checks on GeoJSON features before registration.

Issues carry a severity. ``error`` issues exclude the feature from the
layer; ``warning`` issues are reported and the feature is kept.
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from mapcore.layers.layer import Severity, ValidationIssue, ValidationResult

VALID_GEOMETRY_TYPES = (
    "Point",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
)

URL_FIELDS = ("link", "photo", "url")

_HEX_COLOR = re.compile(r"#([0-9a-fA-F]{6}|[0-9a-fA-F]{3})")
_RGB_COLOR = re.compile(
    r"rgba?\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*(,\s*(0|1|0?\.\d+|1\.0+)\s*)?\)"
)
_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_RELATIVE_URL = re.compile(r"^(https?://|/|\.\.?/)")


def is_valid_url(url: Any) -> bool:
    """Absolute URLs with a scheme, or relative ``/``, ``./``, ``../`` paths."""
    if not isinstance(url, str) or not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme and (parsed.netloc or parsed.path) and " " not in url:
        return True
    return bool(_RELATIVE_URL.match(url))


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL.fullmatch(email))


def is_valid_color(color: Any) -> bool:
    """``#RGB``, ``#RRGGBB``, ``rgb(r, g, b)`` or ``rgba(r, g, b, a)``."""
    if not isinstance(color, str):
        return False
    return bool(_HEX_COLOR.fullmatch(color) or _RGB_COLOR.fullmatch(color))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _feature_id(feature: Any, index: int | None) -> str | int:
    if isinstance(feature, dict):
        props = feature.get("properties")
        if isinstance(props, dict) and props.get("id"):
            return props["id"]
        if feature.get("id"):
            return feature["id"]
    return index if index is not None else "unknown"


def _validate_geometry(geometry: Any, feature_id: str | int) -> list[ValidationIssue]:
    if not isinstance(geometry, dict):
        return [ValidationIssue("geometry", "geometry is required and must be an object", feature_id=feature_id)]
    geometry_type = geometry.get("type")
    if not geometry_type:
        return [ValidationIssue("geometry.type", "geometry.type is required", feature_id=feature_id)]
    if geometry_type not in VALID_GEOMETRY_TYPES:
        return [ValidationIssue(
            "geometry.type",
            f"invalid geometry type '{geometry_type}', expected one of {', '.join(VALID_GEOMETRY_TYPES)}",
            feature_id=feature_id,
        )]
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates:
        return [ValidationIssue(
            "geometry.coordinates", "geometry.coordinates must be a non-empty array", feature_id=feature_id,
        )]
    return []


def _range_check(
    props: dict,
    key: str,
    feature_id: str | int,
    minimum: float | None = None,
    maximum: float | None = None,
) -> list[ValidationIssue]:
    if key not in props:
        return []
    value = props[key]
    field = f"properties.{key}"
    if not _is_number(value):
        return [ValidationIssue(field, f"{key} must be a number", Severity.WARNING, feature_id)]
    if minimum is not None and value < minimum or maximum is not None and value > maximum:
        if maximum is None:
            message = f"{key} must be >= {minimum}"
        else:
            message = f"{key} must be between {minimum} and {maximum}"
        return [ValidationIssue(field, message, Severity.WARNING, feature_id, {"value": value})]
    return []


def _validate_properties(props: Any, feature_id: str | int) -> list[ValidationIssue]:
    if not isinstance(props, dict):
        return [ValidationIssue("properties", "properties is required and must be an object", feature_id=feature_id)]

    issues: list[ValidationIssue] = []
    if not (props.get("name") or props.get("title") or props.get("label")):
        issues.append(ValidationIssue(
            "properties.name", "properties must contain at least name, title or label", feature_id=feature_id,
        ))

    issues += _range_check(props, "distance_km", feature_id, minimum=0)
    issues += _range_check(props, "duration_min", feature_id, minimum=0)
    issues += _range_check(props, "rating", feature_id, minimum=0, maximum=5)
    issues += _range_check(props, "opacity", feature_id, minimum=0, maximum=1)
    issues += _range_check(props, "weight", feature_id, minimum=0)

    color = props.get("color")
    if isinstance(color, str) and not is_valid_color(color):
        issues.append(ValidationIssue(
            "properties.color",
            f"invalid color '{color}', expected #RGB, #RRGGBB, rgb() or rgba()",
            Severity.WARNING,
            feature_id,
        ))

    for key in URL_FIELDS:
        value = props.get(key)
        if isinstance(value, str) and not is_valid_url(value):
            issues.append(ValidationIssue(
                f"properties.{key}", f"{key} is not a valid URL", Severity.WARNING, feature_id,
            ))

    email = props.get("email")
    if isinstance(email, str) and not is_valid_email(email):
        issues.append(ValidationIssue("properties.email", "invalid email", Severity.WARNING, feature_id))

    if "tags" in props:
        tags = props["tags"]
        if not isinstance(tags, list):
            issues.append(ValidationIssue("properties.tags", "tags must be an array", Severity.WARNING, feature_id))
        else:
            for idx, tag in enumerate(tags):
                if not isinstance(tag, str):
                    issues.append(ValidationIssue(
                        f"properties.tags[{idx}]", "tag must be a string", Severity.WARNING, feature_id,
                    ))

    # Properties must stay flat: strings, numbers, booleans, arrays, null
    for key, value in props.items():
        if isinstance(value, dict):
            issues.append(ValidationIssue(
                f"properties.{key}",
                f"nested object property is not allowed, found {json.dumps(value, default=str)[:120]}",
                feature_id=feature_id,
            ))
    return issues


def validate_feature(feature: Any, index: int | None = None) -> tuple[bool, list[ValidationIssue]]:
    """Validate one feature.

    Returns:
        ``(valid, issues)`` where ``valid`` is False iff any issue has
        error severity.
    """
    feature_id = _feature_id(feature, index)
    if not isinstance(feature, dict) or feature.get("type") != "Feature":
        return False, [ValidationIssue("type", "feature must have type 'Feature'", feature_id=feature_id)]

    issues = _validate_geometry(feature.get("geometry"), feature_id)
    issues += _validate_properties(feature.get("properties"), feature_id)
    valid = not any(issue.severity is Severity.ERROR for issue in issues)
    return valid, issues


def validate_feature_collection(collection: Any, layer_id: str | None = None) -> ValidationResult:
    """Split a collection into accepted features and issues.

    Accepts a FeatureCollection, a bare list of features or a single
    feature. Every issue is logged with the layer id, feature index and
    feature id.
    """
    log = logger.bind(layer_id=layer_id)
    if isinstance(collection, dict) and collection.get("type") == "FeatureCollection":
        features = collection.get("features")
    elif isinstance(collection, list):
        features = collection
    elif isinstance(collection, dict):
        features = [collection]
    else:
        log.warning(f"Layer {layer_id}: collection is not an object, nothing to validate")
        return ValidationResult(errors=[ValidationIssue("collection", "collection is not valid")])

    if not isinstance(features, list):
        log.warning(f"Layer {layer_id}: no features to validate")
        return ValidationResult()

    result = ValidationResult()
    for index, feature in enumerate(features):
        valid, issues = validate_feature(feature, index)
        for issue in issues:
            log.debug(
                f"Layer {layer_id} feature #{index} ({issue.feature_id}) "
                f"{issue.severity.value} on {issue.field}: {issue.message}"
            )
        result.errors.extend(issues)
        if valid:
            result.valid_features.append(feature)
        else:
            result.rejected_count += 1
            reasons = "; ".join(
                f"{i.field}: {i.message}" for i in issues if i.severity is Severity.ERROR
            )
            log.warning(f"Layer {layer_id}: feature #{index} ({_feature_id(feature, index)}) rejected: {reasons}")

    if result.rejected_count:
        log.warning(
            f"Layer {layer_id}: {result.rejected_count}/{len(features)} features rejected by validation"
        )
    return result
