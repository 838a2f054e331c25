import logging
import time
from collections import Counter
from typing import List, Dict, Any, Optional, Sequence, Tuple

from pydantic import ValidationError
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception

from ai_clients import CompletionClient, CompletionError, is_rate_limit_error, parse_json_response
from design_schema import MOODS, ScreenshotAnalysis
from image_data import ImageLoadError, ImageRef, load_image
from rate_limiter import RateLimiter, get_shared_limiter


logger = logging.getLogger(__name__)

DEFAULT_COLORS = ['#F0F4FF', '#E0EAFF', '#D0E0FF']
DEFAULT_BACKGROUNDS = ['#F0F4FF', '#FFF0F5', '#F0FFF4']
SAMPLE_WIDTH = 100
QUANTIZE_STEP = 15
MAX_COLORS = 8

MOOD_BACKGROUNDS = {
    'vibrant': ['#FFF5F7', '#FFF9E6', '#F0F9FF'],
    'calm': ['#F0F4FF', '#F0FFF4', '#FFF9F0'],
    'professional': ['#F5F7FA', '#F8F9FA', '#E8EAF6'],
    'playful': ['#FFF0F5', '#FFF9E6', '#F0FDFA'],
    'minimal': ['#FFFFFF', '#FAFAFA', '#F5F5F5'],
}

MOOD_TEMPLATES = {
    'vibrant': ['offset_left', 'offset_right', 'tilted'],
    'calm': ['minimal', 'centered_bold', 'gradient'],
    'professional': ['centered_bold', 'minimal', 'gradient'],
    'playful': ['tilted', 'offset_left', 'offset_right'],
    'minimal': ['minimal', 'centered_bold', 'gradient'],
}

SYSTEM_FONT_STACK = '-apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif'

FONT_FAMILIES = {
    'san francisco': '-apple-system, BlinkMacSystemFont, "SF Pro Text", "SF Pro Display", sans-serif',
    'sf pro': '-apple-system, BlinkMacSystemFont, "SF Pro Text", "SF Pro Display", sans-serif',
    'helvetica': '"Helvetica Neue", Helvetica, Arial, sans-serif',
    'roboto': '"Roboto", -apple-system, BlinkMacSystemFont, sans-serif',
    'inter': '"Inter", -apple-system, BlinkMacSystemFont, sans-serif',
    'poppins': '"Poppins", -apple-system, BlinkMacSystemFont, sans-serif',
    'montserrat': '"Montserrat", -apple-system, BlinkMacSystemFont, sans-serif',
    'open sans': '"Open Sans", -apple-system, BlinkMacSystemFont, sans-serif',
    'lato': '"Lato", -apple-system, BlinkMacSystemFont, sans-serif',
    'nunito': '"Nunito", -apple-system, BlinkMacSystemFont, sans-serif',
    'rounded': '"Nunito", "Quicksand", -apple-system, BlinkMacSystemFont, sans-serif',
    'geometric': '"Montserrat", "Poppins", -apple-system, BlinkMacSystemFont, sans-serif',
    'elegant': '"Playfair Display", "Merriweather", Georgia, serif',
    'classic': '"Georgia", "Times New Roman", serif',
    'serif': 'Georgia, "Times New Roman", Times, serif',
    'monospace': '"Courier New", Courier, monospace',
    'sans-serif': SYSTEM_FONT_STACK,
}

VISION_PROMPT = """Analyze this mobile app screenshot and provide a design analysis for App Store marketing images.

Return ONLY valid JSON, no markdown, no explanations:
{
  "dominantColors": ["#hex1", "#hex2", "#hex3", "#hex4", "#hex5"],
  "suggestedBackgrounds": ["#hex1", "#hex2", "#hex3", "#hex4"],
  "mood": "vibrant|calm|professional|playful|minimal",
  "typography": {
    "primaryFont": "Specific font name (e.g. 'SF Pro', 'Roboto', 'Inter')",
    "secondaryFont": "Font name or style",
    "fontStyle": "modern|classic|playful|minimal|bold",
    "headlineSize": "large|medium|small",
    "textHierarchy": "description"
  },
  "designStyle": {
    "layout": "centered|left-aligned|asymmetric|grid",
    "spacing": "tight|comfortable|spacious",
    "cornerRadius": "sharp|rounded|very-rounded",
    "shadows": "none|subtle|prominent"
  }
}

COLORS (CRITICAL - Be precise):
- List the 5-8 most prominent UI colors (buttons, accents, backgrounds) as exact hex codes
- suggestedBackgrounds: 4-5 lighter, softer colors that complement the app for store screenshots"""


def hex_to_rgb(hex_color: str) -> Optional[Tuple[int, int, int]]:
    """Convert #RRGGBB (or #RGB) to an RGB tuple, None if malformed"""
    s = (hex_color or '').strip().lstrip('#')
    if len(s) == 3:
        s = ''.join(c * 2 for c in s)
    if len(s) != 6:
        return None
    try:
        return tuple(int(s[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return '#' + ''.join(f'{max(0, min(255, int(c))):02x}' for c in (r, g, b))


def lighten_color(hex_color: str, percent: float) -> str:
    """Move a color `percent` of the way toward white"""
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return hex_color
    increase = percent / 100
    return rgb_to_hex(*(min(255, int(c + (255 - c) * increase + 0.5)) for c in rgb))


def _quantize(value: int) -> int:
    return min(255, int(value / QUANTIZE_STEP + 0.5) * QUANTIZE_STEP)


def extract_colors_from_screenshot(image: ImageRef) -> List[str]:
    """
    Extract the most frequent colors of a screenshot by pixel statistics.

    Near-white, near-black and transparent pixels are treated as background or
    text and ignored. Never returns an empty list.

    Args:
        image: Data URI, encoded bytes or PIL image

    Returns:
        Up to 8 hex colors, most frequent first
    """
    try:
        img = load_image(image).convert('RGBA')
    except ImageLoadError as e:
        logger.warning("Could not read screenshot for color extraction: %s", e)
        return list(DEFAULT_COLORS)

    width, height = img.size
    if width == 0 or height == 0:
        return list(DEFAULT_COLORS)
    scaled_height = max(1, int(height * (SAMPLE_WIDTH / width)))
    pixels = img.resize((SAMPLE_WIDTH, scaled_height)).tobytes()

    counts: Counter = Counter()
    for i in range(0, len(pixels), 4):
        r, g, b, a = pixels[i], pixels[i + 1], pixels[i + 2], pixels[i + 3]
        if a < 128:
            continue
        if r > 245 and g > 245 and b > 245:
            continue
        if r < 20 and g < 20 and b < 20:
            continue
        counts[(_quantize(r), _quantize(g), _quantize(b))] += 1

    colors = [rgb_to_hex(*rgb) for rgb, _ in counts.most_common(MAX_COLORS)]
    return colors or list(DEFAULT_COLORS)


def determine_mood(colors: Sequence[str]) -> str:
    """Classify the mood from brightness and saturation of the most frequent color"""
    if not colors:
        return 'minimal'
    rgb = hex_to_rgb(colors[0])
    if rgb is None:
        return 'minimal'

    brightness = sum(rgb) / 3
    saturation = max(rgb) - min(rgb)

    if saturation > 100:
        return 'playful' if brightness > 150 else 'vibrant'
    if saturation < 30:
        return 'minimal' if brightness > 200 else 'professional'
    return 'calm'


def generate_background_suggestions(colors: Sequence[str], mood: str) -> List[str]:
    if not colors:
        return list(DEFAULT_BACKGROUNDS)
    suggestions = [lighten_color(colors[0], 80)]
    suggestions.extend(MOOD_BACKGROUNDS.get(mood, DEFAULT_BACKGROUNDS))
    return suggestions[:4]


def suggest_templates_for_mood(mood: str) -> List[str]:
    return list(MOOD_TEMPLATES.get(mood, ['centered_bold', 'offset_left', 'minimal']))


def convert_font_name_to_font_family(font_name: str) -> str:
    """Map a detected font name to a font-family list the renderer understands"""
    lower = font_name.lower().strip()
    if lower in FONT_FAMILIES:
        return FONT_FAMILIES[lower]
    for key, family in FONT_FAMILIES.items():
        if key in lower:
            return family
    return f'"{font_name}", {SYSTEM_FONT_STACK}'


def default_analysis() -> ScreenshotAnalysis:
    return ScreenshotAnalysis(
        dominantColors=['#F0F4FF'],
        suggestedBackgrounds=list(DEFAULT_BACKGROUNDS),
        mood='minimal',
        suggestedTemplates=['minimal', 'centered_bold', 'gradient'],
    )


def analyze_image(image: ImageRef) -> ScreenshotAnalysis:
    """Statistical analysis of one screenshot; deterministic and offline"""
    colors = extract_colors_from_screenshot(image)
    mood = determine_mood(colors)
    return ScreenshotAnalysis(
        dominantColors=colors,
        suggestedBackgrounds=generate_background_suggestions(colors, mood),
        mood=mood,
        suggestedTemplates=suggest_templates_for_mood(mood),
    )


def _hex_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    out = []
    for c in value:
        if isinstance(c, str) and hex_to_rgb(c) is not None and c.strip().startswith('#'):
            out.append(rgb_to_hex(*hex_to_rgb(c)))
    return out


def normalize_vision_analysis(raw: Dict[str, Any], image: ImageRef) -> ScreenshotAnalysis:
    """
    Turn a vision-model reply into a ScreenshotAnalysis.

    Invalid colors are dropped, an unknown mood becomes "minimal", and thin
    palettes are topped up from the statistical path.
    """
    if not isinstance(raw, dict):
        raise ValueError("Vision analysis is not a JSON object")

    mood = raw.get('mood') if raw.get('mood') in MOODS else 'minimal'
    colors = _hex_list(raw.get('dominantColors'))
    backgrounds = _hex_list(raw.get('suggestedBackgrounds'))

    if len(colors) < 3:
        colors = (colors + extract_colors_from_screenshot(image))[:MAX_COLORS]
    if len(backgrounds) < 3:
        backgrounds = (backgrounds + generate_background_suggestions(colors, mood))[:5]

    typography = dict(raw.get('typography') or {}) if isinstance(raw.get('typography'), dict) else {}
    if typography.get('primaryFont'):
        detected = str(typography['primaryFont'])
        typography['primaryFont'] = convert_font_name_to_font_family(detected)
        logger.info('Detected font "%s" -> "%s"', detected, typography['primaryFont'])

    design_style = raw.get('designStyle') if isinstance(raw.get('designStyle'), dict) else None

    try:
        return ScreenshotAnalysis(
            dominantColors=colors,
            suggestedBackgrounds=backgrounds,
            mood=mood,
            suggestedTemplates=suggest_templates_for_mood(mood),
            typography=typography or None,
            designStyle=design_style,
        )
    except ValidationError as e:
        raise ValueError(f"Vision analysis did not match the expected shape: {e}") from e


def analyze_screenshot_with_ai(
    image: ImageRef,
    client: CompletionClient,
    limiter: Optional[RateLimiter] = None,
    max_attempts: int = 3,
    sleep=time.sleep,
) -> ScreenshotAnalysis:
    """
    Analyze a screenshot with the vision model.

    Every attempt passes through the shared rate limiter; rate-limit errors are
    retried with exponential backoff (2s, 4s, ...), anything else propagates.

    Raises:
        CompletionError: If the service fails or stays rate limited
        ValueError: If the reply cannot be parsed into an analysis
    """
    limiter = limiter or get_shared_limiter()

    for attempt in Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_exception(is_rate_limit_error),
        reraise=True,
        sleep=sleep,
    ):
        with attempt:
            limiter.wait()
            text = client.complete_json(VISION_PROMPT, "Analyze this screenshot.", image=image)

    return normalize_vision_analysis(parse_json_response(text), image)


def analyze_screenshots(
    screenshots: Sequence[ImageRef],
    vision_client: Optional[CompletionClient] = None,
    limiter: Optional[RateLimiter] = None,
    sleep=time.sleep,
) -> Tuple[ScreenshotAnalysis, bool]:
    """
    Analyze the first screenshot, preferring the vision model.

    Never raises: any AI failure falls back to the statistical path.

    Returns:
        (analysis, used_ai)
    """
    if not screenshots:
        return default_analysis(), False

    if vision_client is not None:
        try:
            return analyze_screenshot_with_ai(screenshots[0], vision_client, limiter, sleep=sleep), True
        except (CompletionError, ImageLoadError, ValueError) as e:
            if is_rate_limit_error(e):
                logger.error("Rate limit exceeded for vision analysis; using basic color analysis")
            else:
                logger.error("AI screenshot analysis failed, falling back to basic analysis: %s", e)

    return analyze_image(screenshots[0]), False
