"""Style document validation.

A style document describes how one layer is drawn::

    {
      "id": "default",
      "layerScale": {"minScale": null, "maxScale": null},
      "style": {"color": "#3388ff", "fillOpacity": 0.4, "shape": "circle"},
      "label": {"enabled": true, "field": "name", "visibleByDefault": false},
      "styleRules": [{"when": {"field": "kind", "operator": "==", "value": "x"},
                      "style": {"color": "#ff0000"}}],
      "legend": {"order": 1}
    }

``validate_style`` never raises; it collects every finding into a
``StyleValidationResult`` so the caller decides whether to throw or warn.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from mapcore.layers.layer import Severity, ValidationIssue

_STYLE_ID = re.compile(r"[\w-]+")
_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}")

SHAPES = ("circle", "square")
FILL_PATTERNS = ("diagonal", "horizontal", "vertical", "cross", "x")
OPERATORS = ("==", "!=", "<", ">", "<=", ">=", "in", "contains")


@dataclass
class StyleValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class _Collector:
    """Accumulates findings, tagging each with the document context."""

    def __init__(self, context: dict[str, Any]) -> None:
        self.context = context
        self.result = StyleValidationResult()

    def error(self, field_path: str, message: str, **extra: Any) -> None:
        self.result.errors.append(
            ValidationIssue(field_path, message, Severity.ERROR, context={**extra, **self.context})
        )

    def warning(self, field_path: str, message: str, **extra: Any) -> None:
        self.result.warnings.append(
            ValidationIssue(field_path, message, Severity.WARNING, context={**extra, **self.context})
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


def is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_COLOR.fullmatch(value))


def _check_color(c: _Collector, obj: dict, key: str, prefix: str) -> None:
    if obj.get(key) and not is_hex_color(obj[key]):
        c.error(f"{prefix}.{key}", "invalid color, expected #RRGGBB", received=obj[key])


def _check_opacity(c: _Collector, obj: dict, key: str, prefix: str) -> None:
    if key in obj:
        value = obj[key]
        if not _is_number(value) or value < 0 or value > 1:
            c.error(f"{prefix}.{key}", f"{key} must be a number between 0 and 1", received=value)


def _check_size(c: _Collector, obj: dict, key: str, prefix: str) -> None:
    if key in obj:
        value = obj[key]
        if not _is_number(value) or value < 0:
            c.error(f"{prefix}.{key}", f"{key} must be a number >= 0", received=value)


def _check_enabled_flag(c: _Collector, obj: dict, prefix: str) -> None:
    if "enabled" in obj and not isinstance(obj["enabled"], bool):
        c.error(f"{prefix}.enabled", "enabled must be a boolean", received=type(obj["enabled"]).__name__)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _validate_required(c: _Collector, style_data: dict) -> None:
    fields = list(style_data)
    if style_data.get("id") is None:
        c.error("id", "required field 'id' is missing", available_fields=fields)
    elif not isinstance(style_data["id"], str):
        c.error("id", "id must be a string", received=type(style_data["id"]).__name__)
    elif not _STYLE_ID.fullmatch(style_data["id"]):
        c.error("id", "id may only contain letters, digits, dashes and underscores", received=style_data["id"])

    if style_data.get("style") is None and style_data.get("defaultStyle") is None:
        c.error("style", "required field 'style' or 'defaultStyle' is missing", available_fields=fields)


def _validate_font(c: _Collector, font: Any) -> None:
    if not isinstance(font, dict):
        c.error("label.font", "font must be an object", received=type(font).__name__)
        return
    if "sizePt" in font:
        size = font["sizePt"]
        if not _is_number(size) or size < 1:
            c.error("label.font.sizePt", "sizePt must be a number >= 1", received=size)
    if "weight" in font:
        weight = font["weight"]
        if not _is_int(weight) or weight < 0 or weight > 100:
            c.error("label.font.weight", "weight must be an integer between 0 and 100", received=weight)


def _validate_label_component(c: _Collector, component: Any, prefix: str) -> None:
    if not isinstance(component, dict):
        c.error(prefix, f"{prefix} must be an object", received=type(component).__name__)
        return
    _check_color(c, component, "color", prefix)
    _check_opacity(c, component, "opacity", prefix)
    _check_size(c, component, "sizePx", prefix)


def _validate_label(c: _Collector, style_data: dict) -> None:
    if "label" not in style_data:
        return
    label = style_data["label"]
    # A plain string is only a display name
    if isinstance(label, str):
        return
    if not isinstance(label, dict):
        c.error("label", "label must be a string or a label configuration object", received=repr(label))
        return

    if "enabled" not in label:
        c.error("label.enabled", "'enabled' is required in a label configuration")
    elif not isinstance(label["enabled"], bool):
        c.error("label.enabled", "'enabled' must be a boolean", received=label["enabled"])

    if label.get("enabled") and not label.get("field"):
        c.warning("label.field", "labels are enabled but no field is specified")

    if label.get("font"):
        _validate_font(c, label["font"])
    _check_color(c, label, "color", "label")
    _check_opacity(c, label, "opacity", "label")
    for part in ("buffer", "background"):
        if label.get(part):
            _validate_label_component(c, label[part], f"label.{part}")

    offset = label.get("offset")
    if isinstance(offset, dict) and "distancePx" in offset and not _is_number(offset["distancePx"]):
        c.error("label.offset.distancePx", "distancePx must be a number", received=offset["distancePx"])


def _validate_base_style(c: _Collector, style_data: dict) -> None:
    style = style_data.get("style") or style_data.get("defaultStyle")
    if not style:
        return
    if not isinstance(style, dict):
        c.error("style", "style must be an object", received=type(style).__name__)
        return

    for key in ("fillColor", "color"):
        _check_color(c, style, key, "style")
    for key in ("fillOpacity", "opacity"):
        _check_opacity(c, style, key, "style")
    for key in ("weight", "sizePx", "radius"):
        _check_size(c, style, key, "style")
    if style.get("shape") and style["shape"] not in SHAPES:
        c.error("style.shape", "shape must be 'circle' or 'square'", received=style["shape"])

    stroke = style.get("stroke")
    if stroke:
        if not isinstance(stroke, dict):
            c.error("style.stroke", "stroke must be an object", received=type(stroke).__name__)
        else:
            _check_color(c, stroke, "color", "style.stroke")
            _check_opacity(c, stroke, "opacity", "style.stroke")
            _check_size(c, stroke, "weight", "style.stroke")
            dash = stroke.get("dashArray")
            if dash is not None and not isinstance(dash, str):
                c.error("style.stroke.dashArray", "dashArray must be a string or null", received=dash)

    casing = style.get("casing")
    if casing:
        if not isinstance(casing, dict):
            c.error("style.casing", "casing must be an object", received=type(casing).__name__)
        else:
            _check_enabled_flag(c, casing, "style.casing")
            _check_color(c, casing, "color", "style.casing")

    pattern = style.get("fillPattern")
    if pattern:
        if not isinstance(pattern, dict):
            c.error("style.fillPattern", "fillPattern must be an object", received=type(pattern).__name__)
        else:
            _check_enabled_flag(c, pattern, "style.fillPattern")
            if pattern.get("type") and pattern["type"] not in FILL_PATTERNS:
                c.error(
                    "style.fillPattern.type",
                    f"type must be one of {', '.join(FILL_PATTERNS)}",
                    received=pattern["type"],
                )
            _check_color(c, pattern, "color", "style.fillPattern")
            for key in ("weight", "density"):
                _check_size(c, pattern, key, "style.fillPattern")


def _validate_condition(c: _Collector, condition: Any, prefix: str) -> None:
    if not isinstance(condition, dict):
        c.error(prefix, "condition must be an object", received=type(condition).__name__)
        return
    for key in ("field", "operator", "value"):
        if key not in condition:
            c.error(f"{prefix}.{key}", f"'{key}' is required in a condition")
    if condition.get("operator") and condition["operator"] not in OPERATORS:
        c.error(f"{prefix}.operator", "invalid operator", received=condition["operator"], allowed=list(OPERATORS))
    if condition.get("field") and not isinstance(condition["field"], str):
        c.error(f"{prefix}.field", "field must be a string", received=type(condition["field"]).__name__)


def _validate_style_rules(c: _Collector, rules: Any) -> None:
    if not isinstance(rules, list):
        c.error("styleRules", "styleRules must be an array", received=type(rules).__name__)
        return

    for index, rule in enumerate(rules):
        prefix = f"styleRules[{index}]"
        if not isinstance(rule, dict):
            c.error(prefix, "rule must be an object", rule_index=index)
            continue

        when = rule.get("when")
        if not when:
            c.error(f"{prefix}.when", "'when' is required", rule_index=index)
        elif not isinstance(when, dict):
            c.error(f"{prefix}.when", "when must be an object", rule_index=index)
        elif isinstance(when.get("all"), list):
            for cond_index, condition in enumerate(when["all"]):
                _validate_condition(c, condition, f"{prefix}.when.all[{cond_index}]")
        else:
            _validate_condition(c, when, f"{prefix}.when")

        if not rule.get("style"):
            c.error(f"{prefix}.style", "'style' is required", rule_index=index)
        elif not isinstance(rule["style"], dict):
            c.error(f"{prefix}.style", "style must be an object", rule_index=index)

        if rule.get("legend") and not isinstance(rule["legend"], dict):
            c.error(f"{prefix}.legend", "legend must be an object", rule_index=index)


def _validate_scales(c: _Collector, style_data: dict) -> None:
    for scale_field in ("layerScale", "labelScale"):
        required = scale_field == "layerScale"
        scale = style_data.get(scale_field)
        if not scale:
            if required:
                c.error(scale_field, f"required field '{scale_field}' is missing")
            continue
        if not isinstance(scale, dict):
            c.error(scale_field, f"{scale_field} must be an object", received=type(scale).__name__)
            continue
        for prop in ("minScale", "maxScale"):
            if prop not in scale:
                if required:
                    c.error(f"{scale_field}.{prop}", f"{prop} is required in {scale_field}")
                continue
            value = scale[prop]
            if value is not None and (not _is_number(value) or value < 0):
                c.error(f"{scale_field}.{prop}", f"{prop} must be a number >= 0 or null", received=value)


def _validate_legend(c: _Collector, legend: Any) -> None:
    if not isinstance(legend, dict):
        c.error("legend", "legend must be an object", received=type(legend).__name__)
        return
    if "order" in legend and not _is_int(legend["order"]):
        c.error("legend.order", "order must be an integer", received=legend["order"])


def validate_style(style_data: Any, context: dict[str, Any] | None = None) -> StyleValidationResult:
    """Validate a style document against the style schema.

    Args:
        style_data: Decoded style JSON.
        context: ``profile_id``/``layer_id``/``style_id`` copied into every finding.
    """
    c = _Collector(dict(context or {}))
    if not isinstance(style_data, dict):
        c.error("root", "style must be a JSON object", received=type(style_data).__name__)
        return c.result

    _validate_required(c, style_data)
    _validate_label(c, style_data)
    _validate_base_style(c, style_data)
    if "styleRules" in style_data and style_data["styleRules"] is not None:
        _validate_style_rules(c, style_data["styleRules"])
    _validate_scales(c, style_data)
    if style_data.get("legend"):
        _validate_legend(c, style_data["legend"])
    return c.result


def format_validation_errors(result: StyleValidationResult, style_path: str = "") -> str | None:
    """Human-readable report of a failed validation, or None when valid."""
    if result.valid:
        return None

    lines = ["Style validation failed"]
    if style_path:
        lines.append(f"File: {style_path}")
    lines.append(f"{len(result.errors)} error(s):")
    for index, issue in enumerate(result.errors, 1):
        lines.append(f"  {index}. {issue.field}: {issue.message}")
        if issue.context:
            lines.append(f"     context: {json.dumps(issue.context, default=str, sort_keys=True)}")
    if result.warnings:
        lines.append(f"{len(result.warnings)} warning(s):")
        for index, issue in enumerate(result.warnings, 1):
            lines.append(f"  {index}. {issue.field}: {issue.message}")
    return "\n".join(lines)
