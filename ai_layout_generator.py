import logging
import time
from typing import Optional, Tuple

from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from ai_clients import CompletionClient, CompletionError, RateLimitError, parse_json_response
from config import AI_BACKOFF_BASE, AI_MAX_ATTEMPTS, RATE_LIMIT_PAUSE
from design_schema import AIResponse, PromptAnalysis, ScreenshotAnalysis, sanitize_ai_response, validate_ai_response
from fallback_generator import generate_fallback_layout
from image_data import ImageLoadError, ImageRef
from rate_limiter import RateLimiter, get_shared_limiter


logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The AI service could not produce a valid layout within the retry budget"""
    pass


SYSTEM_PROMPT = """You are an App Store marketing expert specializing in screenshot design.
Your job is to transform an app description into structured App Store screenshot instructions.

CRITICAL: Output ONLY valid JSON. Use EXACT enum values as specified below.

VALID VALUES (use EXACTLY as shown, case-sensitive):
- tone: MUST be one of: "clean", "bold", "professional", "playful", "minimal"
- layout: MUST be one of: "iphone_centered", "iphone_offset", "iphone_feature_list", "iphone_comparison", "iphone_hero"
- background: MUST be one of: "soft_gradient", "solid_light", "solid_dark", "branded", "minimal"
- emphasis: MUST be one of: "dashboard", "charts", "social", "onboarding", "feature"

LAYOUT TYPES:
- iphone_centered: Main app screen centered with headline above
- iphone_offset: Screen offset to one side, text on the other
- iphone_feature_list: Small screen preview with bullet points
- iphone_comparison: Before/after or side-by-side comparison
- iphone_hero: Large, impactful hero screen with minimal text

BACKGROUND STYLES:
- soft_gradient: Subtle gradient background
- solid_light: Clean white or light gray
- solid_dark: Dark background for contrast
- branded: Use brand colors (if mentioned)
- minimal: No background distractions

EMPHASIS OPTIONS:
- dashboard: Highlight main interface
- charts: Focus on data visualization
- social: Show community/sharing features
- onboarding: Welcome/tutorial screens
- feature: Specific feature deep-dive

OUTPUT FORMAT (example):
{
  "theme": "finance",
  "tone": "professional",
  "targetAudience": "young professionals managing budgets",
  "screens": [
    {
      "id": "screen_1",
      "headline": "Track Every Expense",
      "subheadline": "Stay on top of your spending",
      "layout": "iphone_centered",
      "background": "soft_gradient",
      "emphasis": "dashboard"
    },
    {
      "id": "screen_2",
      "headline": "Visualize Your Budget",
      "layout": "iphone_offset",
      "background": "solid_light",
      "emphasis": "charts"
    }
  ]
}

RULES:
- Generate 3-5 screens that tell a story
- Headlines: Max 8 words (50 characters max)
- Focus on user benefits, not technical features
- Use ONLY the exact enum values listed above
- No markdown, no code blocks, ONLY JSON

Now analyze the user's app description and generate the JSON structure."""


def build_user_prompt(
    prompt: str,
    analysis_context: Optional[ScreenshotAnalysis] = None,
    prompt_analysis: Optional[PromptAnalysis] = None,
) -> str:
    """Append what is already known about the app's look and audience to the description"""
    parts = [f"App description: {prompt}"]

    if analysis_context is not None:
        lines = [
            "",
            "SCREENSHOT ANALYSIS:",
            f"- Dominant colors: {', '.join(analysis_context.dominantColors[:5])}",
            f"- Mood: {analysis_context.mood}",
        ]
        if analysis_context.suggestedBackgrounds:
            lines.append(f"- Suggested backgrounds: {', '.join(analysis_context.suggestedBackgrounds[:4])}")
        typography = analysis_context.typography
        if typography is not None and (typography.fontStyle or typography.headlineSize):
            lines.append(f"- Typography: {typography.fontStyle or 'modern'} style, {typography.headlineSize or 'medium'} headlines")
        parts.extend(lines)

    if prompt_analysis is not None:
        parts.extend([
            "",
            "PROMPT ANALYSIS:",
            f"- Category: {prompt_analysis.appCategory}",
            f"- Target audience: {prompt_analysis.targetAudience}",
        ])
        if prompt_analysis.keyFeatures:
            parts.append(f"- Key features: {', '.join(prompt_analysis.keyFeatures)}")
        if prompt_analysis.screenshotStrategy.storytellingArc:
            parts.append(f"- Story arc: {' -> '.join(prompt_analysis.screenshotStrategy.storytellingArc)}")
            parts.append(f"- Recommended screens: {prompt_analysis.screenshotStrategy.recommendedCount}")

    return "\n".join(parts)


def request_layout(
    client: CompletionClient,
    user_prompt: str,
    screenshot: Optional[ImageRef] = None,
    limiter: Optional[RateLimiter] = None,
    sleep=time.sleep,
    rate_limit_pause: float = RATE_LIMIT_PAUSE,
) -> AIResponse:
    """
    One generation attempt: call, parse, sanitize, validate.

    A 429 gets a single short pause and one more call inside this attempt.

    Raises:
        RateLimitError: If the service is still rate limited after the pause
        CompletionError: On network or HTTP errors
        ValueError: If the reply is not JSON or does not validate
    """
    limiter = limiter or get_shared_limiter()

    limiter.wait()
    try:
        text = client.complete_json(SYSTEM_PROMPT, user_prompt, image=screenshot)
    except RateLimitError:
        logger.warning("Rate limited by %s; retrying once in %.0fs", client.name, rate_limit_pause)
        sleep(rate_limit_pause)
        limiter.wait()
        text = client.complete_json(SYSTEM_PROMPT, user_prompt, image=screenshot)

    data = parse_json_response(text)
    return validate_ai_response(sanitize_ai_response(data))


def _is_retryable(exception: BaseException) -> bool:
    if isinstance(exception, RateLimitError):
        return False
    return isinstance(exception, (CompletionError, ValueError))


def generate_layout(
    prompt: str,
    screenshot: Optional[ImageRef] = None,
    analysis_context: Optional[ScreenshotAnalysis] = None,
    prompt_analysis: Optional[PromptAnalysis] = None,
    text_client: Optional[CompletionClient] = None,
    vision_client: Optional[CompletionClient] = None,
    limiter: Optional[RateLimiter] = None,
    max_attempts: int = AI_MAX_ATTEMPTS,
    backoff_base: float = AI_BACKOFF_BASE,
    sleep=time.sleep,
) -> AIResponse:
    """
    Turn an app description (and optionally a screenshot) into a validated layout.

    Network errors, non-2xx responses, parse and validation failures are
    retried with exponential backoff. A persistent 429 ends the loop immediately.

    Args:
        prompt: The user's app description
        screenshot: Optional screenshot; sent only when a vision client is given
        analysis_context: Colors and mood from the visual analyzer
        prompt_analysis: Category and audience from the prompt analyzer
        text_client: JSON-mode text completion client
        vision_client: Client that accepts inline images

    Returns:
        Validated AIResponse

    Raises:
        GenerationError: If no client is configured or all attempts fail
    """
    if screenshot is not None and vision_client is not None:
        client = vision_client
    else:
        client, screenshot = text_client, None
    if client is None:
        raise GenerationError("No AI client configured")

    user_prompt = build_user_prompt(prompt, analysis_context, prompt_analysis)
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=backoff_base),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
        sleep=sleep,
    )

    try:
        for attempt in retrying:
            with attempt:
                response = request_layout(client, user_prompt, screenshot, limiter=limiter, sleep=sleep)
    except RateLimitError as e:
        raise GenerationError(f"Rate limit exceeded: {e}") from e
    except (CompletionError, ImageLoadError, ValueError) as e:
        raise GenerationError(f"Layout generation failed: {e}") from e

    logger.info('Generated %d screens for theme "%s"', len(response.screens), response.theme)
    return response


def generate_layout_with_fallback(prompt: str, **kwargs) -> Tuple[AIResponse, bool]:
    """
    Like generate_layout, but falls back to the built-in layouts instead of raising.

    Returns:
        (response, used_fallback)
    """
    try:
        return generate_layout(prompt, **kwargs), False
    except GenerationError as e:
        logger.warning("AI layout unavailable, using built-in layout: %s", e)
    except Exception:
        logger.exception("Unexpected error during layout generation, using built-in layout")
    return generate_fallback_layout(prompt), True
