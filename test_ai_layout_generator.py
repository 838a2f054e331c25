import json

import pytest
import requests

from ai_clients import ChatCompletionClient, CompletionError, RateLimitError
from ai_layout_generator import (
    GenerationError,
    build_user_prompt,
    generate_layout,
    generate_layout_with_fallback,
)
from design_schema import get_schema_example
from prompt_analyzer import fallback_prompt_analysis
from screenshot_analyzer import default_analysis

VALID_REPLY = json.dumps(get_schema_example())


class UnreachableSession:
    def __init__(self):
        self.calls = 0

    def post(self, *args, **kwargs):
        self.calls += 1
        raise requests.ConnectionError("Connection refused")


def test_valid_reply_is_parsed(fake_client, limiter, sleep):
    client = fake_client(VALID_REPLY)
    response = generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)
    assert response.theme == "finance"
    assert [s.id for s in response.screens] == ["screen_1", "screen_2"]
    assert sleep.calls == []


def test_code_fenced_reply_is_accepted(fake_client, limiter, sleep):
    client = fake_client(f"```json\n{VALID_REPLY}\n```")
    assert generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep).tone == "professional"


def test_invalid_enum_values_are_sanitized(fake_client, limiter, sleep):
    reply = json.dumps({
        "theme": "fitness",
        "tone": "aggressive",
        "screens": [{"headline": "Lift More", "layout": "iphone_sideways", "background": "plaid"}],
    })
    response = generate_layout("gym app", text_client=fake_client(reply), limiter=limiter, sleep=sleep)

    assert response.tone == "professional"
    assert response.screens[0].id == "screen_1"
    assert response.screens[0].layout == "iphone_centered"
    assert response.screens[0].background == "soft_gradient"


def test_server_errors_are_retried_with_backoff(fake_client, limiter, sleep):
    client = fake_client(CompletionError("Bad gateway", status=502), VALID_REPLY)

    response = generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert response.theme == "finance"
    assert len(client.calls) == 2
    assert sleep.calls == [1]


def test_persistent_parse_errors_exhaust_retries(fake_client, limiter, sleep):
    client = fake_client("not json at all")

    with pytest.raises(GenerationError):
        generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert len(client.calls) == 3
    assert sleep.calls == [1, 2]


def test_overlong_headline_fails_validation(fake_client, limiter, sleep):
    reply = json.dumps({
        "theme": "finance",
        "tone": "clean",
        "screens": [{"headline": "A" * 51, "layout": "iphone_hero", "background": "minimal"}],
    })
    with pytest.raises(GenerationError):
        generate_layout("budget tracker", text_client=fake_client(reply), limiter=limiter, sleep=sleep)


def test_client_errors_are_retried(fake_client, limiter, sleep):
    client = fake_client(CompletionError("Bad request", status=400), VALID_REPLY)

    response = generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert response.theme == "finance"
    assert len(client.calls) == 2
    assert sleep.calls == [1]


def test_persistent_client_errors_exhaust_retries(fake_client, limiter, sleep):
    client = fake_client(CompletionError("Unauthorized", status=401))

    with pytest.raises(GenerationError):
        generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert len(client.calls) == 3
    assert sleep.calls == [1, 2]


def test_rate_limit_gets_one_short_retry(fake_client, limiter, sleep):
    client = fake_client(RateLimitError(), VALID_REPLY)

    response = generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert response.theme == "finance"
    assert len(client.calls) == 2
    assert sleep.calls == [2.0]


def test_persistent_rate_limit_stops_the_retry_loop(fake_client, limiter, sleep):
    client = fake_client(RateLimitError())

    with pytest.raises(GenerationError, match="Rate limit"):
        generate_layout("budget tracker", text_client=client, limiter=limiter, sleep=sleep)

    assert len(client.calls) == 2
    assert sleep.calls == [2.0]


def test_missing_client_raises():
    with pytest.raises(GenerationError):
        generate_layout("budget tracker")


def test_screenshot_goes_to_vision_client(fake_client, limiter, sleep, solid_image):
    text_client = fake_client(VALID_REPLY)
    vision_client = fake_client(VALID_REPLY)
    screenshot = solid_image("#3B82F6")

    generate_layout("budget tracker", screenshot=screenshot, text_client=text_client,
                    vision_client=vision_client, limiter=limiter, sleep=sleep)

    assert text_client.calls == []
    assert vision_client.calls[0]["image"] == screenshot


def test_screenshot_is_not_sent_to_text_client(fake_client, limiter, sleep, solid_image):
    text_client = fake_client(VALID_REPLY)
    generate_layout("budget tracker", screenshot=solid_image("#3B82F6"), text_client=text_client,
                    limiter=limiter, sleep=sleep)
    assert text_client.calls[0]["image"] is None


def test_user_prompt_carries_analysis_context():
    prompt = build_user_prompt("budget tracker", default_analysis(), fallback_prompt_analysis("budget tracker"))
    assert "budget tracker" in prompt
    assert "Mood: minimal" in prompt
    assert "Category: finance" in prompt
    assert "Hook with main value" in prompt


def test_unreachable_service_falls_back_to_builtin_layout(limiter, sleep):
    session = UnreachableSession()
    client = ChatCompletionClient(api_key="test-key", session=session)

    response, used_fallback = generate_layout_with_fallback(
        "A budgeting app for young professionals", text_client=client, limiter=limiter, sleep=sleep
    )

    assert used_fallback is True
    assert response.theme == "finance"
    assert len(response.screens) == 3
    assert session.calls == 3


def test_fallback_without_any_client():
    response, used_fallback = generate_layout_with_fallback("meditation timer")
    assert used_fallback is True
    assert response.theme == "wellness"


def test_fallback_wrapper_passes_through_success(fake_client, limiter, sleep):
    response, used_fallback = generate_layout_with_fallback(
        "budget tracker", text_client=fake_client(VALID_REPLY), limiter=limiter, sleep=sleep
    )
    assert used_fallback is False
    assert len(response.screens) == 2
