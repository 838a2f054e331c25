import json

from ai_clients import CompletionError, RateLimitError
from prompt_analyzer import analyze_prompt, fallback_prompt_analysis


def _reply(**overrides):
    data = {
        "appCategory": "productivity",
        "appName": "Taskly",
        "keyFeatures": ["Smart lists", "Reminders"],
        "targetAudience": "busy freelancers",
        "visualStyle": {"mood": "calm", "colorScheme": ["#0EA5E9"], "designStyle": "minimal"},
        "screenshotStrategy": {"recommendedCount": 4, "focusAreas": ["Lists"], "storytellingArc": ["Hook", "Proof"]},
        "confidence": 0.9,
        "suggestions": [],
    }
    data.update(overrides)
    return json.dumps(data)


def test_no_client_uses_keyword_fallback():
    analysis = analyze_prompt("A workout tracker for runners")
    assert analysis.appCategory == "fitness"
    assert analysis.visualStyle.mood == "energetic"
    assert analysis.confidence == 0.6


def test_unknown_prompt_is_general():
    analysis = fallback_prompt_analysis("A recipe organizer")
    assert analysis.appCategory == "general"
    assert analysis.visualStyle.colorScheme == ["#3B82F6", "#10B981"]
    assert analysis.appName == "Your App"


def test_ai_analysis_is_used(fake_client, limiter, sleep):
    client = fake_client(_reply())
    analysis = analyze_prompt("A to-do app", client, limiter=limiter, sleep=sleep)
    assert analysis.appName == "Taskly"
    assert analysis.screenshotStrategy.recommendedCount == 4
    assert 'User Prompt: "A to-do app"' in client.calls[0]["user"]


def test_out_of_range_numbers_are_clamped(fake_client, limiter, sleep):
    reply = _reply(confidence=7, screenshotStrategy={"recommendedCount": 12})
    analysis = analyze_prompt("A to-do app", fake_client(reply), limiter=limiter, sleep=sleep)
    assert analysis.confidence == 1.0
    assert analysis.screenshotStrategy.recommendedCount == 5


def test_rate_limit_retries_once(fake_client, limiter, sleep):
    client = fake_client(RateLimitError(), _reply())
    analysis = analyze_prompt("A to-do app", client, limiter=limiter, sleep=sleep)
    assert analysis.appName == "Taskly"
    assert sleep.calls == [2.0]
    assert len(client.calls) == 2


def test_persistent_rate_limit_falls_back(fake_client, limiter, sleep):
    client = fake_client(RateLimitError())
    analysis = analyze_prompt("A budgeting app", client, limiter=limiter, sleep=sleep)
    assert analysis.appCategory == "finance"
    assert len(client.calls) == 2
    assert sleep.calls == [2.0]


def test_invalid_reply_falls_back_without_retry(fake_client, limiter, sleep):
    client = fake_client("definitely not json")
    analysis = analyze_prompt("A chat app", client, limiter=limiter, sleep=sleep)
    assert analysis.appCategory == "social"
    assert len(client.calls) == 1
    assert sleep.calls == []


def test_service_error_falls_back(fake_client, limiter, sleep):
    client = fake_client(CompletionError("Bad gateway", status=502))
    assert analyze_prompt("A meditation app", client, limiter=limiter, sleep=sleep).appCategory == "meditation"
