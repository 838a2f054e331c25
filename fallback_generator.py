"""Built-in layouts used whenever the AI service is unavailable or keeps failing."""
import logging
from typing import Dict, Any, List, Tuple

from design_schema import AIResponse, Gradient, validate_ai_response


logger = logging.getLogger(__name__)

FALLBACK_AUDIENCE = "tech-savvy users aged 25-40"

# (theme, keywords, tone, screens); checked in order, first match wins
_CATEGORIES: List[Tuple[str, Tuple[str, ...], str, List[Dict[str, Any]]]] = [
    ("finance", ("finance", "budget", "money", "expense"), "professional", [
        {"headline": "Track Every Expense", "subheadline": "Stay on top of your spending",
         "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "dashboard"},
        {"headline": "Visualize Your Budget", "subheadline": "See where your money goes",
         "layout": "iphone_offset", "background": "solid_light", "emphasis": "charts"},
        {"headline": "Reach Your Goals", "subheadline": "Save more, stress less",
         "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "feature"},
    ]),
    ("fitness", ("fitness", "health", "workout", "gym"), "bold", [
        {"headline": "Achieve Your Goals", "subheadline": "Personalized workout plans",
         "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "dashboard"},
        {"headline": "Track Your Progress", "subheadline": "See your improvements",
         "layout": "iphone_offset", "background": "solid_light", "emphasis": "charts"},
        {"headline": "Stay Motivated", "subheadline": "Join a community",
         "layout": "iphone_hero", "background": "minimal", "emphasis": "social"},
    ]),
    ("wellness", ("meditation", "mindful", "calm", "sleep", "wellness"), "minimal", [
        {"headline": "Find Your Peace", "subheadline": "Guided meditation",
         "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "dashboard"},
        {"headline": "Breathe & Relax", "subheadline": "Reduce stress",
         "layout": "iphone_hero", "background": "minimal", "emphasis": "feature"},
        {"headline": "Track Your Journey",
         "layout": "iphone_offset", "background": "solid_light", "emphasis": "charts"},
    ]),
    ("social", ("social", "chat", "friend", "message"), "playful", [
        {"headline": "Transform Your Experience", "subheadline": "Everything you need",
         "layout": "iphone_centered", "background": "branded", "emphasis": "social"},
        {"headline": "Built For You", "subheadline": "Personalized features",
         "layout": "iphone_comparison", "background": "soft_gradient", "emphasis": "feature"},
        {"headline": "Stay Connected", "subheadline": "Your friends, one tap away",
         "layout": "iphone_hero", "background": "solid_light", "emphasis": "social"},
    ]),
]

_GENERAL_SCREENS = [
    {"headline": "Transform Your Experience", "subheadline": "Everything you need",
     "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "dashboard"},
    {"headline": "Built For You", "subheadline": "Personalized features",
     "layout": "iphone_offset", "background": "solid_light", "emphasis": "feature"},
    {"headline": "Start Today", "subheadline": "Join thousands of users",
     "layout": "iphone_centered", "background": "soft_gradient", "emphasis": "social"},
]

_GRADIENTS = [
    (("finance", "professional", "trust"), ("#667eea", "#764ba2")),
    (("fitness", "energy", "active"), ("#f093fb", "#f5576c")),
    (("calm", "meditat", "peace"), ("#a8edea", "#fed6e3")),
    (("social", "fun", "playful"), ("#fa709a", "#fee140")),
]
DEFAULT_GRADIENT_COLORS = ("#667eea", "#764ba2")


def detect_category(prompt: str) -> str:
    lower = (prompt or "").lower()
    for theme, keywords, _, _ in _CATEGORIES:
        if any(k in lower for k in keywords):
            return theme
    return "general"


def generate_fallback_layout(prompt: str) -> AIResponse:
    """
    Build a schema-valid layout from keywords in the prompt.

    Deterministic and offline: the same prompt always yields the same
    response, so it can stand in for the AI service at any time.

    Args:
        prompt: The user's app description

    Returns:
        AIResponse with 3 screens
    """
    theme = detect_category(prompt)
    tone = "professional"
    screens = _GENERAL_SCREENS
    for name, _, category_tone, category_screens in _CATEGORIES:
        if name == theme:
            tone, screens = category_tone, category_screens
            break

    logger.info('Using built-in "%s" layout', theme)
    return validate_ai_response({
        "theme": theme,
        "tone": tone,
        "targetAudience": FALLBACK_AUDIENCE,
        "screens": [dict(screen, id=f"screen_{i + 1}") for i, screen in enumerate(screens)],
    })


def gradient_for_description(description: str) -> Gradient:
    """Pick a 135° background gradient from keywords in a free-text description"""
    lower = (description or "").lower()
    colors = DEFAULT_GRADIENT_COLORS
    for keywords, gradient_colors in _GRADIENTS:
        if any(k in lower for k in keywords):
            colors = gradient_colors
            break
    return Gradient(type="linear", colors=colors, angle=135)
