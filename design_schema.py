import copy
import logging
from typing import Dict, Any, List, Optional, Tuple, Literal, get_args
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = r'^#[0-9A-Fa-f]{6}$'

Tone = Literal["clean", "bold", "professional", "playful", "minimal"]
LayoutKind = Literal[
    "iphone_centered",
    "iphone_offset",
    "iphone_feature_list",
    "iphone_comparison",
    "iphone_hero",
]
BackgroundKind = Literal["soft_gradient", "solid_light", "solid_dark", "branded", "minimal"]
Emphasis = Literal["dashboard", "charts", "social", "onboarding", "feature"]
Mood = Literal["vibrant", "calm", "professional", "playful", "minimal"]
LayerType = Literal["background", "mockup", "text", "image", "decoration"]
TextAlign = Literal["left", "center", "right"]

TONES = get_args(Tone)
LAYOUTS = get_args(LayoutKind)
BACKGROUNDS = get_args(BackgroundKind)
EMPHASES = get_args(Emphasis)
MOODS = get_args(Mood)

# Values written over anything the model returns outside the enums above
DEFAULT_TONE = "professional"
DEFAULT_LAYOUT = "iphone_centered"
DEFAULT_BACKGROUND = "soft_gradient"
DEFAULT_EMPHASIS = "feature"


class ScreenLayout(BaseModel):
    """One screenshot as described by the AI: copy plus a layout descriptor"""
    id: str = Field(..., min_length=1)
    headline: str = Field(..., max_length=50, description="Headline must be under 50 characters")
    subheadline: Optional[str] = Field(None, max_length=100)
    layout: LayoutKind
    background: BackgroundKind
    emphasis: Optional[Emphasis] = None


class AIResponse(BaseModel):
    """Complete structured answer of the layout model"""
    theme: str
    tone: Tone
    targetAudience: Optional[str] = None
    screens: List[ScreenLayout] = Field(..., min_length=1, max_length=5)


class Typography(BaseModel):
    primaryFont: Optional[str] = None
    secondaryFont: Optional[str] = None
    fontStyle: Optional[str] = None
    headlineSize: Optional[str] = None
    textHierarchy: Optional[str] = None


class DesignStyle(BaseModel):
    layout: Optional[str] = None
    spacing: Optional[str] = None
    cornerRadius: Optional[str] = None
    shadows: Optional[str] = None


class ScreenshotAnalysis(BaseModel):
    """Colors and mood extracted from a screenshot, immutable once computed"""
    model_config = ConfigDict(frozen=True)

    dominantColors: List[str] = Field(..., min_length=1)
    suggestedBackgrounds: List[str] = Field(default_factory=list)
    mood: Mood
    suggestedTemplates: List[str] = Field(default_factory=list)
    typography: Optional[Typography] = None
    designStyle: Optional[DesignStyle] = None

    @field_validator('dominantColors', 'suggestedBackgrounds')
    @classmethod
    def validate_hex_colors(cls, v):
        for color in v:
            if not isinstance(color, str) or not color.startswith('#'):
                raise ValueError(f"Expected a hex color, got {color!r}")
        return v


class VisualStyle(BaseModel):
    mood: str = "professional"
    colorScheme: List[str] = Field(default_factory=list)
    designStyle: str = "modern"


class ScreenshotStrategy(BaseModel):
    recommendedCount: int = Field(3, ge=1, le=5)
    focusAreas: List[str] = Field(default_factory=list)
    storytellingArc: List[str] = Field(default_factory=list)


class PromptAnalysis(BaseModel):
    """What the prompt analyzer learned about the app before any screenshot is seen"""
    appCategory: str = "general"
    appName: str = "Your App"
    keyFeatures: List[str] = Field(default_factory=list)
    targetAudience: str = "users"
    visualStyle: VisualStyle = Field(default_factory=VisualStyle)
    screenshotStrategy: ScreenshotStrategy = Field(default_factory=ScreenshotStrategy)
    confidence: float = Field(0.5, ge=0, le=1)
    suggestions: List[str] = Field(default_factory=list)


class MockupFrame(BaseModel):
    """Where the screenshot sits inside the device chrome, relative to the mockup layer"""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)
    borderRadius: Optional[float] = None


class Gradient(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["linear", "radial"] = "linear"
    colors: Tuple[str, ...] = Field(..., min_length=2)
    angle: Optional[float] = None


class Layer(BaseModel):
    """A positioned element of a screen, in logical canvas units"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    type: LayerType
    content: str = ""
    x: float = 0
    y: float = 0
    width: float = Field(0, ge=0)
    height: float = Field(0, ge=0)
    # text
    fontSize: Optional[float] = Field(None, gt=0)
    fontFamily: Optional[str] = None
    color: Optional[str] = None
    bold: bool = False
    italic: bool = False
    underline: bool = False
    align: TextAlign = "left"
    # mockup / image
    mockupFrame: Optional[MockupFrame] = None
    # background / decoration
    backgroundColor: Optional[str] = None
    backgroundGradient: Optional[Gradient] = None


class Screen(BaseModel):
    """One exportable canvas; layer order is paint order"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    backgroundColor: str = "#FFFFFF"
    layers: Tuple[Layer, ...] = ()


def sanitize_ai_response(response: Any) -> Any:
    """
    Coerce out-of-range enum values to their documented defaults.

    Only a missing tone is filled in; a missing layout or background is left
    for strict validation to reject.

    Runs before strict validation so that a single bad enum value does not
    discard an otherwise usable response. The input is not modified.

    Args:
        response: Parsed JSON from the model

    Returns:
        A sanitized copy (non-dict input is returned unchanged)
    """
    if not isinstance(response, dict):
        return response

    result = copy.deepcopy(response)

    tone = result.get('tone')
    if tone not in TONES:
        if tone is not None:
            logger.warning('Invalid tone "%s", defaulting to "%s"', tone, DEFAULT_TONE)
        result['tone'] = DEFAULT_TONE

    screens = result.get('screens')
    if isinstance(screens, list):
        for i, screen in enumerate(screens):
            if not isinstance(screen, dict):
                continue
            if not screen.get('id'):
                screen['id'] = f"screen_{i + 1}"

            layout = screen.get('layout')
            if layout is not None and layout not in LAYOUTS:
                logger.warning('Invalid layout "%s", defaulting to "%s"', layout, DEFAULT_LAYOUT)
                screen['layout'] = DEFAULT_LAYOUT

            background = screen.get('background')
            if background is not None and background not in BACKGROUNDS:
                logger.warning('Invalid background "%s", defaulting to "%s"', background, DEFAULT_BACKGROUND)
                screen['background'] = DEFAULT_BACKGROUND

            emphasis = screen.get('emphasis')
            if emphasis is not None and emphasis not in EMPHASES:
                logger.warning('Invalid emphasis "%s", defaulting to "%s"', emphasis, DEFAULT_EMPHASIS)
                screen['emphasis'] = DEFAULT_EMPHASIS

    return result


def validate_ai_response(response_json: Dict[str, Any]) -> AIResponse:
    """
    Validate a (sanitized) AI response against the strict schema.

    Args:
        response_json: Response as dictionary

    Returns:
        The parsed AIResponse

    Raises:
        ValueError: If validation fails
    """
    if isinstance(response_json, dict):
        # Internal metadata fields are not part of the contract
        response_json = {k: v for k, v in response_json.items() if not k.startswith('_')}

    try:
        return AIResponse.model_validate(response_json)
    except ValidationError as e:
        raise ValueError(f"AI response validation failed: {e}") from e


def get_schema_example() -> Dict[str, Any]:
    """
    Get an example AI response that conforms to the schema.

    Returns:
        Example response JSON
    """
    return {
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
