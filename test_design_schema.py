import pytest
from pydantic import ValidationError

from design_schema import (
    Layer,
    ScreenshotAnalysis,
    get_schema_example,
    sanitize_ai_response,
    validate_ai_response,
)


def _response(**screen):
    base = {"id": "screen_1", "headline": "Track Every Expense", "layout": "iphone_centered", "background": "solid_light"}
    base.update(screen)
    return {"theme": "finance", "tone": "professional", "screens": [base]}


def test_schema_example_is_valid():
    response = validate_ai_response(get_schema_example())
    assert response.theme == "finance"
    assert len(response.screens) == 2


def test_sanitize_replaces_invalid_enums_with_defaults():
    raw = {
        "theme": "finance",
        "tone": "corporate",
        "screens": [
            {"headline": "Track Every Expense", "layout": "iphone_grid", "background": "neon", "emphasis": "hero"},
        ],
    }
    response = validate_ai_response(sanitize_ai_response(raw))

    assert response.tone == "professional"
    screen = response.screens[0]
    assert screen.id == "screen_1"
    assert screen.layout == "iphone_centered"
    assert screen.background == "soft_gradient"
    assert screen.emphasis == "feature"


def test_sanitize_fills_missing_tone_and_keeps_missing_emphasis():
    raw = _response()
    del raw["tone"]
    sanitized = sanitize_ai_response(raw)
    assert sanitized["tone"] == "professional"
    assert "emphasis" not in sanitized["screens"][0]


def test_sanitize_leaves_missing_layout_and_background_for_validation():
    raw = {"theme": "finance", "screens": [{"id": "s", "headline": "h"}]}
    sanitized = sanitize_ai_response(raw)

    screen = sanitized["screens"][0]
    assert "layout" not in screen
    assert "background" not in screen
    with pytest.raises(ValueError, match="validation failed"):
        validate_ai_response(sanitized)


def test_sanitize_does_not_modify_input():
    raw = _response(layout="bogus")
    sanitize_ai_response(raw)
    assert raw["screens"][0]["layout"] == "bogus"


def test_sanitize_never_truncates_headlines():
    raw = _response(headline="x" * 60)
    sanitized = sanitize_ai_response(raw)
    assert sanitized["screens"][0]["headline"] == "x" * 60
    with pytest.raises(ValueError, match="validation failed"):
        validate_ai_response(sanitized)


def test_sanitize_passes_through_non_dict():
    assert sanitize_ai_response(["not", "a", "dict"]) == ["not", "a", "dict"]


def test_validate_rejects_too_many_screens():
    raw = _response()
    raw["screens"] = raw["screens"] * 6
    with pytest.raises(ValueError):
        validate_ai_response(raw)


def test_validate_rejects_empty_screens():
    raw = _response()
    raw["screens"] = []
    with pytest.raises(ValueError):
        validate_ai_response(raw)


def test_validate_ignores_metadata_fields():
    raw = _response()
    raw["_source"] = "cache"
    assert validate_ai_response(raw).theme == "finance"


def test_screenshot_analysis_requires_hex_colors():
    with pytest.raises(ValidationError):
        ScreenshotAnalysis(dominantColors=[], mood="calm")
    with pytest.raises(ValidationError):
        ScreenshotAnalysis(dominantColors=["red"], mood="calm")


def test_layers_are_immutable():
    layer = Layer(id="headline_0", type="text", content="Hi")
    with pytest.raises(ValidationError):
        layer.x = 10


def test_layer_rejects_negative_size():
    with pytest.raises(ValidationError):
        Layer(id="a", type="decoration", width=-1)
