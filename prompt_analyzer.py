import logging
import time
from typing import Dict, Any, Optional

from pydantic import ValidationError

from ai_clients import CompletionClient, CompletionError, RateLimitError, parse_json_response
from config import RATE_LIMIT_PAUSE
from design_schema import PromptAnalysis, ScreenshotStrategy, VisualStyle
from rate_limiter import RateLimiter, get_shared_limiter


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert App Store marketing analyst. Analyze the user's prompt for creating app screenshots and provide a detailed analysis.

Provide a comprehensive analysis in JSON format with the following structure:
{
  "appCategory": "primary category (e.g., fitness, finance, social, productivity, etc.)",
  "appName": "detected or inferred app name",
  "keyFeatures": ["list", "of", "main", "features", "to", "highlight"],
  "targetAudience": "description of target users",
  "visualStyle": {
    "mood": "overall mood (e.g., energetic, calm, professional, playful)",
    "colorScheme": ["#hex1", "#hex2", "#hex3"],
    "designStyle": "design approach (e.g., minimal, bold, gradient, glassmorphic)"
  },
  "screenshotStrategy": {
    "recommendedCount": 3,
    "focusAreas": ["what", "to", "emphasize", "in", "each", "screenshot"],
    "storytellingArc": ["screen 1 purpose", "screen 2 purpose", "screen 3 purpose"]
  },
  "confidence": 0.8,
  "suggestions": ["actionable", "suggestions", "for", "better", "screenshots"]
}

recommendedCount is between 3 and 5, confidence between 0.0 and 1.0.
Provide ONLY the JSON response, no markdown or explanations."""

# (category, keywords, mood, colors); first match wins
_KEYWORD_STYLES = [
    ("finance", ("finance", "budget", "money"), "professional", ["#10B981", "#059669", "#047857"]),
    ("fitness", ("fitness", "health", "workout"), "energetic", ["#F59E0B", "#EF4444", "#EC4899"]),
    ("meditation", ("meditation", "mindful", "calm"), "calm", ["#8B5CF6", "#A78BFA", "#C4B5FD"]),
    ("social", ("social", "chat", "message"), "playful", ["#3B82F6", "#8B5CF6", "#EC4899"]),
]


def fallback_prompt_analysis(prompt: str) -> PromptAnalysis:
    """Keyword-based analysis used when the AI service is not available"""
    lower = (prompt or "").lower()
    category, mood, colors = "general", "professional", ["#3B82F6", "#10B981"]
    for name, keywords, style_mood, style_colors in _KEYWORD_STYLES:
        if any(k in lower for k in keywords):
            category, mood, colors = name, style_mood, list(style_colors)
            break

    return PromptAnalysis(
        appCategory=category,
        appName="Your App",
        keyFeatures=["Main Feature", "Key Benefit", "Unique Selling Point"],
        targetAudience="young professionals aged 25-40",
        visualStyle=VisualStyle(mood=mood, colorScheme=colors, designStyle="modern gradient"),
        screenshotStrategy=ScreenshotStrategy(
            recommendedCount=3,
            focusAreas=["Main interface", "Key features", "User benefits"],
            storytellingArc=["Hook with main value", "Show key features", "Call to action"],
        ),
        confidence=0.6,
        suggestions=["Upload actual app screenshots for better results", "Specify your target audience"],
    )


def _normalize(raw: Dict[str, Any]) -> PromptAnalysis:
    if not isinstance(raw, dict):
        raise ValueError("Prompt analysis is not a JSON object")
    data = {k: v for k, v in raw.items() if v is not None}

    strategy = data.get('screenshotStrategy')
    if isinstance(strategy, dict) and isinstance(strategy.get('recommendedCount'), (int, float)):
        strategy = dict(strategy, recommendedCount=max(1, min(5, int(strategy['recommendedCount']))))
        data['screenshotStrategy'] = strategy
    if isinstance(data.get('confidence'), (int, float)):
        data['confidence'] = max(0.0, min(1.0, float(data['confidence'])))

    try:
        return PromptAnalysis.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Prompt analysis did not match the expected shape: {e}") from e


def analyze_prompt(
    prompt: str,
    client: Optional[CompletionClient] = None,
    limiter: Optional[RateLimiter] = None,
    sleep=time.sleep,
    rate_limit_pause: float = RATE_LIMIT_PAUSE,
) -> PromptAnalysis:
    """
    Analyze the user's app description before any screenshot is seen.

    A 429 gets one short pause and one more try; every other failure goes
    straight to the keyword fallback. Never raises.

    Args:
        prompt: The user's app description
        client: Completion client, None to skip the AI entirely

    Returns:
        PromptAnalysis
    """
    if client is None:
        logger.warning("No AI client for prompt analysis, using fallback analysis")
        return fallback_prompt_analysis(prompt)

    limiter = limiter or get_shared_limiter()
    user_prompt = f'User Prompt: "{prompt}"'

    for attempt in range(2):
        try:
            limiter.wait()
            text = client.complete_json(SYSTEM_PROMPT, user_prompt)
            analysis = _normalize(parse_json_response(text))
            logger.info("AI prompt analysis: %s", analysis.appCategory)
            return analysis
        except RateLimitError:
            if attempt == 0:
                logger.warning("Rate limited during prompt analysis; retrying in %.0fs", rate_limit_pause)
                sleep(rate_limit_pause)
                continue
            logger.warning("Still rate limited; using fallback analysis")
        except (CompletionError, ValueError) as e:
            logger.error("Prompt analysis failed, using fallback analysis: %s", e)
        break

    return fallback_prompt_analysis(prompt)
