"""Tests for style document validation."""
from __future__ import annotations

import copy

import pytest

from mapcore.layers.style_validator import format_validation_errors, validate_style

VALID_STYLE = {
    "id": "default",
    "layerScale": {"minScale": None, "maxScale": 50000},
    "style": {
        "color": "#3388ff",
        "fillColor": "#112233",
        "fillOpacity": 0.4,
        "weight": 2,
        "shape": "circle",
        "stroke": {"color": "#000000", "opacity": 1, "dashArray": "4 2"},
        "fillPattern": {"enabled": True, "type": "diagonal", "density": 3},
    },
    "label": {
        "enabled": True,
        "field": "name",
        "visibleByDefault": False,
        "font": {"sizePt": 10, "weight": 60},
        "buffer": {"color": "#ffffff", "sizePx": 1},
    },
    "styleRules": [
        {"when": {"field": "kind", "operator": "==", "value": "museum"}, "style": {"color": "#ff0000"}},
        {
            "when": {"all": [
                {"field": "rating", "operator": ">=", "value": 4},
                {"field": "open", "operator": "==", "value": True},
            ]},
            "style": {"color": "#00ff00"},
            "legend": {"label": "Top rated"},
        },
    ],
    "legend": {"order": 2},
}


def _style(**overrides):
    style = copy.deepcopy(VALID_STYLE)
    style.update(overrides)
    return style


def _fields(result):
    return [issue.field for issue in result.errors]


@pytest.mark.unit
class TestValidateStyle:

    def test_valid_document(self):
        result = validate_style(VALID_STYLE)
        assert result.valid
        assert result.warnings == []

    def test_not_an_object(self):
        result = validate_style(["id"])
        assert not result.valid
        assert _fields(result) == ["root"]

    def test_id_and_style_are_required(self):
        style = _style()
        del style["id"]
        del style["style"]
        result = validate_style(style)
        assert "id" in _fields(result)
        assert "style" in _fields(result)

    def test_default_style_alias(self):
        style = _style()
        style["defaultStyle"] = style.pop("style")
        assert validate_style(style).valid

    def test_id_characters(self):
        assert "id" in _fields(validate_style(_style(id="bad id!")))

    def test_trailing_newline_is_not_accepted(self):
        result = validate_style(_style(id="night\n", style={"color": "#ffffff\n"}))
        assert set(_fields(result)) == {"id", "style.color"}

    def test_bad_colors_and_ranges(self):
        result = validate_style(_style(style={"color": "blue", "fillOpacity": 2, "weight": -1, "shape": "star"}))
        assert set(_fields(result)) == {"style.color", "style.fillOpacity", "style.weight", "style.shape"}

    def test_stroke_dash_array_must_be_string(self):
        result = validate_style(_style(style={"stroke": {"dashArray": [4, 2]}}))
        assert _fields(result) == ["style.stroke.dashArray"]

    def test_fill_pattern_type(self):
        result = validate_style(_style(style={"fillPattern": {"type": "dots"}}))
        assert _fields(result) == ["style.fillPattern.type"]

    def test_label_enabled_required(self):
        result = validate_style(_style(label={"field": "name"}))
        assert _fields(result) == ["label.enabled"]

    def test_label_string_is_display_name(self):
        assert validate_style(_style(label="Museums")).valid

    def test_label_without_field_is_a_warning(self):
        result = validate_style(_style(label={"enabled": True}))
        assert result.valid
        assert [w.field for w in result.warnings] == ["label.field"]

    def test_label_font(self):
        result = validate_style(_style(label={"enabled": False, "font": {"sizePt": 0, "weight": 150}}))
        assert set(_fields(result)) == {"label.font.sizePt", "label.font.weight"}

    def test_style_rules(self):
        rules = [
            {"style": {"color": "#ff0000"}},
            {"when": {"field": "a", "operator": "~", "value": 1}, "style": {}},
            {"when": {"all": [{"field": "a", "value": 1}]}, "style": {"color": "#ff0000"}},
        ]
        fields = _fields(validate_style(_style(styleRules=rules)))
        assert "styleRules[0].when" in fields
        assert "styleRules[1].when.operator" in fields
        assert "styleRules[1].style" in fields
        assert "styleRules[2].when.all[0].operator" in fields

    def test_style_rules_must_be_a_list(self):
        assert _fields(validate_style(_style(styleRules={"when": {}}))) == ["styleRules"]

    def test_layer_scale_required(self):
        style = _style()
        del style["layerScale"]
        assert _fields(validate_style(style)) == ["layerScale"]

    def test_scale_bounds(self):
        result = validate_style(_style(layerScale={"minScale": -5}, labelScale={"maxScale": "big"}))
        assert set(_fields(result)) == {"layerScale.minScale", "layerScale.maxScale", "labelScale.maxScale"}

    def test_legend_order_integer(self):
        assert _fields(validate_style(_style(legend={"order": 1.5}))) == ["legend.order"]
        assert validate_style(_style(legend={"order": 3.0})).valid

    def test_context_is_attached(self):
        result = validate_style(_style(id=None), {"layer_id": "museums", "style_id": "default"})
        assert result.errors[0].context["layer_id"] == "museums"


@pytest.mark.unit
class TestFormatValidationErrors:

    def test_valid_result_formats_to_none(self):
        assert format_validation_errors(validate_style(VALID_STYLE)) is None

    def test_report_lists_errors_and_path(self):
        result = validate_style(_style(style={"color": "blue"}, label={"enabled": True}))
        report = format_validation_errors(result, "profiles/p/layers/a/styles/default.json")
        assert "File: profiles/p/layers/a/styles/default.json" in report
        assert "1. style.color" in report
        assert "1 warning(s)" in report
