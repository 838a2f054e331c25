"""
Turns layout descriptors into positioned layers on the 1242x2688 canvas.

Two sources of geometry live here: the five AI layout kinds (`resolve`) and a
small library of named templates (`apply_template`) that the screenshot
analyzer recommends by mood.
"""
import logging
from typing import Dict, Any, List, Optional, Sequence

from config import CANVAS_HEIGHT, CANVAS_WIDTH
from design_schema import AIResponse, Gradient, Layer, MockupFrame, Screen, ScreenLayout, ScreenshotAnalysis


logger = logging.getLogger(__name__)

SYSTEM_FONT = '-apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif'
DARK_TEXT = "#1A1A1A"
LIGHT_TEXT = "#FFFFFF"

# background kind -> (base color, gradient colors or None)
BACKGROUND_STYLES = {
    "soft_gradient": ("#F0F4FF", ("#F0F4FF", "#E0E7FF")),
    "solid_light": ("#FFFFFF", None),
    "solid_dark": ("#1A1A1A", None),
    "branded": ("#3B82F6", None),
    "minimal": ("#F5F5F5", None),
}
DARK_BACKGROUNDS = ("solid_dark", "branded")

# Standard device proportions: screen inset and corner radius relative to the frame
_FRAME_INSET = 0.035
_FRAME_RADIUS = 0.11


class TemplateNotFoundError(KeyError):
    """No named template with the requested id"""
    pass


def _mockup(layer_id: str, screenshot: str, x: float, y: float, width: float, height: float) -> Layer:
    inset = round(width * _FRAME_INSET, 2)
    return Layer(
        id=layer_id,
        type="mockup",
        content=screenshot or "",
        x=x,
        y=y,
        width=width,
        height=height,
        mockupFrame=MockupFrame(
            x=inset,
            y=inset,
            width=width - 2 * inset,
            height=height - 2 * inset,
            borderRadius=round(width * _FRAME_RADIUS, 2),
        ),
    )


def _text(layer_id: str, content: str, x: float, y: float, width: float, height: float,
          font_size: float, color: str, font_family: str, bold: bool = False, align: str = "center") -> Layer:
    return Layer(
        id=layer_id,
        type="text",
        content=content,
        x=x,
        y=y,
        width=width,
        height=height,
        fontSize=font_size,
        fontFamily=font_family,
        color=color,
        bold=bold,
        align=align,
    )


def background_layer(background: str, index: int, gradient_override: Optional[Gradient] = None) -> Layer:
    """
    Full-canvas background layer; unknown kinds render as solid_light.

    `gradient_override` replaces the soft_gradient pair, e.g. with a gradient
    picked from the app description.
    """
    color, colors = BACKGROUND_STYLES.get(background, BACKGROUND_STYLES["solid_light"])
    gradient = Gradient(type="linear", colors=colors, angle=135) if colors else None
    if background == "soft_gradient" and gradient_override is not None:
        color, gradient = gradient_override.colors[0], gradient_override
    return Layer(
        id=f"bg_{index}",
        type="background",
        x=0,
        y=0,
        width=CANVAS_WIDTH,
        height=CANVAS_HEIGHT,
        backgroundColor=color,
        backgroundGradient=gradient,
    )


def _bullets(text: Optional[str]) -> str:
    if not text:
        return ""
    parts = [p.strip() for p in text.replace(";", ",").split(",") if p.strip()]
    return "\n".join(f"• {p}" for p in parts)


def _centered(s: ScreenLayout, shot: str, i: int, colors, font: str) -> List[Layer]:
    title, body = colors
    layers = [
        _text(f"headline_{i}", s.headline, 80, 180, 1082, 260, 96, title, font, bold=True),
        _mockup(f"mockup_{i}", shot, 211, 480, 820, 1780),
    ]
    if s.subheadline:
        layers.append(_text(f"subheadline_{i}", s.subheadline, 120, 2330, 1002, 200, 52, body, font))
    return layers


def _offset(s: ScreenLayout, shot: str, i: int, colors, font: str) -> List[Layer]:
    title, body = colors
    layers = [
        _text(f"headline_{i}", s.headline, 70, 880, 500, 440, 84, title, font, bold=True, align="left"),
        _mockup(f"mockup_{i}", shot, 600, 560, 600, 1300),
    ]
    if s.subheadline:
        layers.append(_text(f"subheadline_{i}", s.subheadline, 70, 1340, 500, 320, 48, body, font, align="left"))
    return layers


def _feature_list(s: ScreenLayout, shot: str, i: int, colors, font: str) -> List[Layer]:
    title, body = colors
    layers = [
        _text(f"headline_{i}", s.headline, 80, 180, 1082, 260, 88, title, font, bold=True),
        _mockup(f"mockup_{i}", shot, 90, 640, 520, 1130),
    ]
    bullets = _bullets(s.subheadline)
    if bullets:
        layers.append(_text(f"subheadline_{i}", bullets, 660, 700, 520, 1000, 46, body, font, align="left"))
    return layers


def _comparison(s: ScreenLayout, shot: str, i: int, colors, font: str) -> List[Layer]:
    title, body = colors
    layers = [
        _text(f"headline_{i}", s.headline, 80, 180, 1082, 260, 92, title, font, bold=True),
        _mockup(f"mockup_{i}", shot, 70, 620, 530, 1150),
        _mockup(f"mockup_compare_{i}", shot, 642, 620, 530, 1150),
    ]
    if s.subheadline:
        layers.append(_text(f"subheadline_{i}", s.subheadline, 120, 1900, 1002, 200, 52, body, font))
    return layers


def _hero(s: ScreenLayout, shot: str, i: int, colors, font: str) -> List[Layer]:
    title, _ = colors
    return [
        _text(f"headline_{i}", s.headline, 80, 140, 1082, 280, 104, title, font, bold=True),
        _mockup(f"mockup_{i}", shot, 96, 460, 1050, 2280),
    ]


LAYOUT_BUILDERS = {
    "iphone_centered": _centered,
    "iphone_offset": _offset,
    "iphone_feature_list": _feature_list,
    "iphone_comparison": _comparison,
    "iphone_hero": _hero,
}


def resolve(
    screen_layout: ScreenLayout,
    screenshot: Optional[str],
    index: int,
    font_family: Optional[str] = None,
    gradient: Optional[Gradient] = None,
) -> List[Layer]:
    """
    Produce the layers for one AI screen descriptor.

    Pure: the same arguments always give the same layers. The background layer
    always comes first; unknown layout kinds fall back to the centered layout.

    Args:
        screen_layout: Descriptor from the AI response
        screenshot: Data URI placed inside the mockup(s)
        index: Screen position, used as the layer id suffix
        font_family: Font list for all text layers, system font if omitted
        gradient: Colors for soft_gradient backgrounds instead of the default pair

    Returns:
        Layers in paint order
    """
    builder = LAYOUT_BUILDERS.get(screen_layout.layout)
    if builder is None:
        logger.warning('Unknown layout "%s", using iphone_centered', screen_layout.layout)
        builder = _centered

    if screen_layout.background in DARK_BACKGROUNDS:
        colors = (LIGHT_TEXT, "#E5E7EB")
    else:
        colors = (DARK_TEXT, "#4B5563")

    layers = [background_layer(screen_layout.background, index, gradient)]
    layers.extend(builder(screen_layout, screenshot or "", index, colors, font_family or SYSTEM_FONT))
    return layers


def resolve_screens(
    ai_response: AIResponse,
    screenshots: Sequence[str],
    analysis: Optional[ScreenshotAnalysis] = None,
    gradient: Optional[Gradient] = None,
) -> List[Screen]:
    """
    Build one Screen per uploaded screenshot from an AI response.

    Screens cycle through the AI descriptors when there are more screenshots
    than descriptors. Without screenshots, one empty-mockup screen is built per
    descriptor. `gradient` recolors every soft_gradient background.
    """
    font_family = None
    if analysis is not None and analysis.typography is not None:
        font_family = analysis.typography.primaryFont

    count = len(screenshots) if screenshots else len(ai_response.screens)
    screens = []
    for i in range(count):
        descriptor = ai_response.screens[i % len(ai_response.screens)]
        shot = screenshots[i] if screenshots else ""
        layers = resolve(descriptor, shot, i, font_family, gradient)
        screens.append(Screen(
            id=f"screen_{i + 1}",
            name=f"Screen {i + 1}",
            backgroundColor=layers[0].backgroundColor or "#FFFFFF",
            layers=tuple(layers),
        ))
    return screens


# Named templates are authored on a 375x812 grid and scaled to the canvas
TEMPLATE_GRID_WIDTH = 375
TEMPLATE_SCALE = CANVAS_WIDTH / TEMPLATE_GRID_WIDTH

_TEXT_BOX = "rgba(255, 255, 255, 0.15)"

# id -> (name, description, default background, layer specs)
_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "centered_bold": {
        "name": "Centered Bold",
        "description": "Phone centered with bold headline above",
        "background": "#F0F4FF",
        "layers": [
            {"id": "headline", "type": "text", "box": (20, 60, 335, 80), "fontSize": 32,
             "color": "#000000", "bold": True, "align": "center"},
            {"id": "mockup", "type": "mockup", "box": (50, 180, 275, 550), "frame": (10, 10, 255, 530, 30)},
            {"id": "subtitle", "type": "text", "box": (30, 745, 315, 50), "fontSize": 14,
             "color": "#666666", "align": "center"},
        ],
    },
    "offset_left": {
        "name": "Offset Left",
        "description": "Phone on left, text on right",
        "background": "#FF8C42",
        "layers": [
            {"id": "text_box", "type": "decoration", "box": (200, 80, 155, 150), "fill": _TEXT_BOX},
            {"id": "headline", "type": "text", "box": (210, 100, 145, 120), "fontSize": 18,
             "color": "#FFFFFF", "bold": True, "align": "center"},
            {"id": "mockup", "type": "mockup", "box": (20, 220, 250, 500), "frame": (8, 8, 234, 484, 28)},
            {"id": "subtitle", "type": "text", "box": (20, 735, 335, 60), "fontSize": 13,
             "color": "#FFFFFF", "align": "left"},
        ],
    },
    "offset_right": {
        "name": "Offset Right",
        "description": "Phone on right, text on left",
        "background": "#10B981",
        "layers": [
            {"id": "text_box", "type": "decoration", "box": (20, 80, 155, 150), "fill": _TEXT_BOX},
            {"id": "headline", "type": "text", "box": (30, 100, 135, 120), "fontSize": 18,
             "color": "#FFFFFF", "bold": True, "align": "center"},
            {"id": "mockup", "type": "mockup", "box": (105, 220, 250, 500), "frame": (8, 8, 234, 484, 28)},
            {"id": "subtitle", "type": "text", "box": (20, 735, 335, 60), "fontSize": 13,
             "color": "#FFFFFF", "align": "right"},
        ],
    },
    "gradient": {
        "name": "Gradient",
        "description": "Centered with gradient background",
        "background": "#667eea",
        "gradient": ("#667eea", "#764ba2"),
        "layers": [
            {"id": "headline", "type": "text", "box": (20, 60, 335, 80), "fontSize": 28,
             "color": "#FFFFFF", "bold": True, "align": "center"},
            {"id": "mockup", "type": "mockup", "box": (50, 180, 275, 550), "frame": (10, 10, 255, 530, 30)},
            {"id": "subtitle", "type": "text", "box": (30, 745, 315, 50), "fontSize": 14,
             "color": "#FFFFFF", "align": "center"},
        ],
    },
    "minimal": {
        "name": "Minimal",
        "description": "Clean white background",
        "background": "#FFFFFF",
        "fixed_background": True,
        "layers": [
            {"id": "headline", "type": "text", "box": (20, 70, 335, 70), "fontSize": 26,
             "color": "#1a1a1a", "bold": True, "align": "center"},
            {"id": "mockup", "type": "mockup", "box": (62.5, 180, 250, 500), "frame": (8, 8, 234, 484, 28)},
            {"id": "subtitle", "type": "text", "box": (30, 700, 315, 90), "fontSize": 14,
             "color": "#666666", "align": "center"},
        ],
    },
    "tilted": {
        "name": "Tilted",
        "description": "Phone at an angle for dynamic look",
        "background": "#3B82F6",
        "layers": [
            {"id": "headline", "type": "text", "box": (20, 80, 250, 100), "fontSize": 28,
             "color": "#FFFFFF", "bold": True, "align": "left"},
            {"id": "mockup", "type": "mockup", "box": (80, 220, 260, 520), "frame": (8, 8, 244, 504, 30)},
            {"id": "subtitle", "type": "text", "box": (20, 745, 335, 50), "fontSize": 13,
             "color": "#FFFFFF", "align": "left"},
        ],
    },
}

AVAILABLE_TEMPLATES = [
    {"id": template_id, "name": t["name"], "description": t["description"]}
    for template_id, t in _TEMPLATES.items()
]


def _scale(value: float) -> float:
    return round(value * TEMPLATE_SCALE, 2)


def _template_layer(spec: Dict[str, Any], index: int, screenshot: str, headline: str, subtitle: str) -> Layer:
    x, y, width, height = (_scale(v) for v in spec["box"])
    fields: Dict[str, Any] = {
        "id": f"{spec['id']}_{index}",
        "type": spec["type"],
        "x": x,
        "y": y,
        "width": width,
        "height": height,
    }
    if spec["type"] == "text":
        fields.update(
            content=headline if spec["id"] == "headline" else subtitle,
            fontSize=_scale(spec["fontSize"]),
            fontFamily=SYSTEM_FONT,
            color=spec["color"],
            bold=spec.get("bold", False),
            align=spec["align"],
        )
    elif spec["type"] == "mockup":
        fx, fy, fw, fh, radius = spec["frame"]
        fields.update(
            content=screenshot or "",
            mockupFrame=MockupFrame(x=_scale(fx), y=_scale(fy), width=_scale(fw), height=_scale(fh),
                                    borderRadius=_scale(radius)),
        )
    elif spec["type"] == "decoration":
        fields["backgroundColor"] = spec["fill"]
    return Layer(**fields)


def apply_template(
    template_id: str,
    screenshot: str,
    headline: str,
    subtitle: str,
    bg_color: Optional[str] = None,
    logo: Optional[str] = None,
    index: int = 0,
) -> List[Layer]:
    """
    Build the layers of a named template.

    Args:
        template_id: One of AVAILABLE_TEMPLATES
        screenshot: Data URI placed inside the mockup
        headline: Headline text
        subtitle: Subtitle text
        bg_color: Overrides the template's background color (ignored by "minimal" and "gradient")
        logo: Optional data URI, added as an image layer in the top-left corner
        index: Layer id suffix

    Raises:
        TemplateNotFoundError: If the template id is unknown
    """
    template = _TEMPLATES.get(template_id)
    if template is None:
        raise TemplateNotFoundError(f"Template {template_id} not found")

    gradient = template.get("gradient")
    color = template["background"]
    if bg_color and not gradient and not template.get("fixed_background"):
        color = bg_color

    layers = [Layer(
        id=f"bg_{index}",
        type="background",
        x=0,
        y=0,
        width=CANVAS_WIDTH,
        height=CANVAS_HEIGHT,
        backgroundColor=color,
        backgroundGradient=Gradient(type="linear", colors=gradient, angle=135) if gradient else None,
    )]
    if logo:
        layers.append(Layer(id=f"logo_{index}", type="image", content=logo,
                            x=_scale(20), y=_scale(20), width=_scale(50), height=_scale(50)))
    layers.extend(_template_layer(spec, index, screenshot, headline, subtitle) for spec in template["layers"])
    return layers
