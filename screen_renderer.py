import io
import logging
import math
import re
import time
import zipfile
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from config import CANVAS_HEIGHT, CANVAS_WIDTH
from design_schema import Gradient, Layer, Screen
from image_data import ImageLoadError, image_to_data_uri, load_image


logger = logging.getLogger(__name__)

EXPORT_SIZES: Dict[str, Tuple[int, int]] = {
    'iPhone 6.7"': (1290, 2796),
    'iPhone 6.5"': (1242, 2688),
    'iPhone 5.5"': (1242, 2208),
    'iPad Pro 12.9"': (2048, 2732),
    'iPad Pro 11"': (1668, 2388),
}
DEFAULT_EXPORT_SIZE = 'iPhone 6.5"'

TEXT_PADDING = 8
LINE_HEIGHT = 1.2
DEVICE_COLOR = (28, 28, 30, 255)
SCREEN_PLACEHOLDER = (229, 231, 235, 255)

_FONT_DIRS = ['/usr/share/fonts/truetype/liberation/', '/usr/share/fonts/truetype/dejavu/']

# style -> (regular, bold, italic, bold italic) candidates
_FONT_FILES = {
    'sans': [
        ('LiberationSans-Regular.ttf', 'LiberationSans-Bold.ttf', 'LiberationSans-Italic.ttf', 'LiberationSans-BoldItalic.ttf'),
        ('DejaVuSans.ttf', 'DejaVuSans-Bold.ttf', 'DejaVuSans-Oblique.ttf', 'DejaVuSans-BoldOblique.ttf'),
    ],
    'serif': [
        ('LiberationSerif-Regular.ttf', 'LiberationSerif-Bold.ttf', 'LiberationSerif-Italic.ttf', 'LiberationSerif-BoldItalic.ttf'),
        ('DejaVuSerif.ttf', 'DejaVuSerif-Bold.ttf', 'DejaVuSerif-Italic.ttf', 'DejaVuSerif-BoldItalic.ttf'),
    ],
    'mono': [
        ('LiberationMono-Regular.ttf', 'LiberationMono-Bold.ttf', 'LiberationMono-Italic.ttf', 'LiberationMono-BoldItalic.ttf'),
        ('DejaVuSansMono.ttf', 'DejaVuSansMono-Bold.ttf', 'DejaVuSansMono-Oblique.ttf', 'DejaVuSansMono-BoldOblique.ttf'),
    ],
}

_SERIF_NAMES = ('serif', 'georgia', 'times', 'playfair', 'merriweather')
_MONO_NAMES = ('monospace', 'courier', 'mono')

_RGBA_RE = re.compile(r'^rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+)\s*)?\)$', re.IGNORECASE)

Size = Union[str, Tuple[int, int], None]


def font_style_for_family(font_family: Optional[str]) -> str:
    """Classify a font-family list as sans, serif or mono by its first recognizable entry"""
    for name in (font_family or '').split(','):
        name = name.strip().strip('"\'').lower()
        if any(n in name for n in _MONO_NAMES):
            return 'mono'
        if name == 'sans-serif':
            return 'sans'
        if any(n in name for n in _SERIF_NAMES):
            return 'serif'
        if name and not name.startswith('-apple') and name != 'blinkmacsystemfont':
            return 'sans'
    return 'sans'


@lru_cache(maxsize=128)
def get_font(style: str, size_px: int, bold: bool = False, italic: bool = False) -> ImageFont.ImageFont:
    """
    Get a TrueType font for the style and variant.
    Falls back to Pillow's built-in font if no candidate is installed.
    """
    variant = (2 if italic else 0) + (1 if bold else 0)
    for files in _FONT_FILES.get(style, _FONT_FILES['sans']):
        name = files[variant]
        for path in [d + name for d in _FONT_DIRS] + [name]:
            try:
                return ImageFont.truetype(path, size_px)
            except OSError:
                continue
    logger.warning("No TrueType font found for %s; using default font", style)
    return ImageFont.load_default(size=size_px)


def parse_color(color: Optional[str], default: Tuple[int, int, int, int] = (255, 255, 255, 255)) -> Tuple[int, int, int, int]:
    """Parse #hex, rgb() or rgba() with a 0-1 alpha into an RGBA tuple"""
    if not color:
        return default
    match = _RGBA_RE.match(color.strip())
    if match:
        r, g, b = (max(0, min(255, int(float(v)))) for v in match.groups()[:3])
        alpha = match.group(4)
        a = 255 if alpha is None else max(0, min(255, int(round(float(alpha) * 255))))
        return r, g, b, a
    try:
        rgb = ImageColor.getrgb(color.strip())
    except ValueError:
        logger.warning("Unrecognized color %r", color)
        return default
    return rgb if len(rgb) == 4 else (*rgb, 255)


def _gradient_luts(colors: Sequence[Tuple[int, int, int, int]]) -> List[List[int]]:
    steps = len(colors) - 1
    luts: List[List[int]] = [[], [], [], []]
    for v in range(256):
        pos = v / 255 * steps
        i = min(int(pos), steps - 1)
        t = pos - i
        for ch in range(4):
            luts[ch].append(int(round(colors[i][ch] + (colors[i + 1][ch] - colors[i][ch]) * t)))
    return luts


def render_gradient(gradient: Gradient, size: Tuple[int, int]) -> Image.Image:
    """
    Rasterize a gradient with CSS semantics: linear angles are measured
    clockwise from "to top", radial gradients run from the center outward.
    """
    width, height = max(1, size[0]), max(1, size[1])
    colors = [parse_color(c) for c in gradient.colors]

    if gradient.type == 'radial':
        mask = Image.radial_gradient('L').resize((width, height), Image.Resampling.BILINEAR)
    else:
        angle = 180 if gradient.angle is None else gradient.angle
        rad = math.radians(angle)
        length = max(1, int(abs(width * math.sin(rad)) + abs(height * math.cos(rad))))
        side = int(math.hypot(width, height)) + 2
        ramp = Image.new('L', (side, side), 0)
        ramp.paste(255, (0, (side + length) // 2, side, side))
        ramp.paste(Image.linear_gradient('L').resize((side, length)), (0, (side - length) // 2))
        ramp = ramp.rotate(180 - angle, resample=Image.Resampling.BICUBIC)
        left, top = (side - width) // 2, (side - height) // 2
        mask = ramp.crop((left, top, left + width, top + height))

    return Image.merge('RGBA', [mask.point(lut) for lut in _gradient_luts(colors)])


def _composite(canvas: Image.Image, tile: Image.Image, x: int, y: int) -> None:
    """Alpha-composite a tile at (x, y), clipped to the canvas"""
    left, top = max(0, x), max(0, y)
    right, bottom = min(canvas.width, x + tile.width), min(canvas.height, y + tile.height)
    if right <= left or bottom <= top:
        return
    clipped = tile.crop((left - x, top - y, right - x, bottom - y))
    canvas.alpha_composite(clipped, dest=(left, top))


def _rounded_mask(size: Tuple[int, int], radius: float) -> Image.Image:
    mask = Image.new('L', size, 0)
    ImageDraw.Draw(mask).rounded_rectangle([0, 0, size[0] - 1, size[1] - 1], radius=max(0, int(radius)), fill=255)
    return mask


class _Transform:
    """Maps logical canvas units to output pixels with uniform scale and letterboxing"""

    def __init__(self, output_size: Tuple[int, int]) -> None:
        width, height = output_size
        self.scale = min(width / CANVAS_WIDTH, height / CANVAS_HEIGHT)
        self.offset_x = (width - CANVAS_WIDTH * self.scale) / 2
        self.offset_y = (height - CANVAS_HEIGHT * self.scale) / 2
        # Tiles never exceed twice the output size, however large the layer
        self.max_width = 2 * width
        self.max_height = 2 * height

    def box(self, x: float, y: float, width: float, height: float) -> Tuple[int, int, int, int]:
        return (
            int(round(self.offset_x + x * self.scale)),
            int(round(self.offset_y + y * self.scale)),
            min(self.max_width, max(1, int(round(width * self.scale)))),
            min(self.max_height, max(1, int(round(height * self.scale)))),
        )

    def length(self, value: float) -> float:
        return value * self.scale


def render_fill_layer(canvas: Image.Image, layer: Layer, tf: _Transform) -> None:
    """Background and decoration layers: solid color, rgba() or gradient"""
    x, y, w, h = tf.box(layer.x, layer.y, layer.width, layer.height)
    if layer.backgroundGradient is not None:
        tile = render_gradient(layer.backgroundGradient, (w, h))
    elif layer.backgroundColor:
        tile = Image.new('RGBA', (w, h), parse_color(layer.backgroundColor))
    else:
        return
    _composite(canvas, tile, x, y)


def _load_or_warn(layer: Layer) -> Optional[Image.Image]:
    if not layer.content:
        return None
    try:
        return load_image(layer.content).convert('RGBA')
    except ImageLoadError as e:
        logger.warning("Skipping image for layer %s: %s", layer.id, e)
        return None


def render_mockup_layer(canvas: Image.Image, layer: Layer, tf: _Transform) -> None:
    """Device frame with the screenshot filling the inner screen area"""
    x, y, w, h = tf.box(layer.x, layer.y, layer.width, layer.height)
    frame = layer.mockupFrame
    if frame is not None:
        sx, sy = int(round(tf.length(frame.x))), int(round(tf.length(frame.y)))
        sw = min(w, max(1, int(round(tf.length(frame.width)))))
        sh = min(h, max(1, int(round(tf.length(frame.height)))))
        radius = tf.length(frame.borderRadius or 0)
        inset = min(sx, sy)
    else:
        sx, sy, sw, sh, radius, inset = 0, 0, w, h, 0, 0

    device = Image.new('RGBA', (w, h), (0, 0, 0, 0))
    if frame is not None:
        body = Image.new('RGBA', (w, h), DEVICE_COLOR)
        device.paste(body, (0, 0), _rounded_mask((w, h), radius + inset))

    screenshot = _load_or_warn(layer)
    if screenshot is not None:
        screen_img = ImageOps.fit(screenshot, (sw, sh), Image.Resampling.LANCZOS)
    else:
        screen_img = Image.new('RGBA', (sw, sh), SCREEN_PLACEHOLDER)
    device.paste(screen_img, (sx, sy), _rounded_mask((sw, sh), radius))

    _composite(canvas, device, x, y)


def render_image_layer(canvas: Image.Image, layer: Layer, tf: _Transform) -> None:
    image = _load_or_warn(layer)
    if image is None:
        return
    x, y, w, h = tf.box(layer.x, layer.y, layer.width, layer.height)
    fitted = ImageOps.contain(image, (w, h), Image.Resampling.LANCZOS)
    _composite(canvas, fitted, x + (w - fitted.width) // 2, y + (h - fitted.height) // 2)


def _wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: float) -> List[str]:
    lines = []
    for paragraph in text.split('\n'):
        words = paragraph.split(' ')
        current = ''
        for word in words:
            candidate = f"{current} {word}" if current else word
            if not current or draw.textlength(candidate, font=font) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def render_text_layer(canvas: Image.Image, layer: Layer, tf: _Transform) -> None:
    """Render a text layer, wrapped to its box width"""
    if not layer.content:
        return
    x, y, w, _ = tf.box(layer.x, layer.y, layer.width, layer.height)
    size_px = min(canvas.height, max(1, int(round(tf.length(layer.fontSize or 32)))))
    font = get_font(font_style_for_family(layer.fontFamily), size_px, layer.bold, layer.italic)
    color = parse_color(layer.color, default=(0, 0, 0, 255))
    pad = tf.length(TEXT_PADDING)

    overlay = Image.new('RGBA', canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    line_height = size_px * LINE_HEIGHT

    for i, line in enumerate(_wrap_text(draw, layer.content, font, max(1, w - 2 * pad))):
        line_width = draw.textlength(line, font=font)
        if layer.align == 'center':
            line_x = x + w / 2 - line_width / 2
        elif layer.align == 'right':
            line_x = x + w - line_width
        else:
            line_x = x + pad
        line_y = y + i * line_height
        draw.text((line_x, line_y), line, fill=color, font=font)
        if layer.underline and line:
            underline_y = line_y + size_px * 1.05
            draw.line([(line_x, underline_y), (line_x + line_width, underline_y)],
                      fill=color, width=max(1, size_px // 15))

    canvas.alpha_composite(overlay)


_RENDERERS = {
    'background': render_fill_layer,
    'decoration': render_fill_layer,
    'mockup': render_mockup_layer,
    'image': render_image_layer,
    'text': render_text_layer,
}


def resolve_export_size(size: Size) -> Tuple[int, int]:
    if size is None:
        return CANVAS_WIDTH, CANVAS_HEIGHT
    if isinstance(size, str):
        if size not in EXPORT_SIZES:
            raise ValueError(f"Unknown export size {size!r}; expected one of {', '.join(EXPORT_SIZES)}")
        return EXPORT_SIZES[size]
    return int(size[0]), int(size[1])


def rasterize(screen: Screen, size: Size = None) -> Image.Image:
    """
    Render a screen to a PIL Image.

    The logical canvas is scaled uniformly to the output size; if the aspect
    ratio differs, the remaining bands are filled with the screen background.

    Args:
        screen: Screen to render
        size: Export size name, (width, height), or None for the logical canvas size

    Returns:
        RGBA PIL Image
    """
    output_size = resolve_export_size(size)
    canvas = Image.new('RGBA', output_size, parse_color(screen.backgroundColor))
    tf = _Transform(output_size)

    for layer in screen.layers:
        _RENDERERS[layer.type](canvas, layer, tf)

    return canvas


def render_screen_to_bytes(screen: Screen, size: Size = None, format: str = 'PNG') -> bytes:
    """
    Render a screen to image bytes.

    Args:
        screen: Screen to render
        size: Export size name or (width, height)
        format: PNG or JPEG

    Returns:
        Image bytes
    """
    image = rasterize(screen, size)
    format = format.upper()
    if format in ('JPEG', 'JPG'):
        format = 'JPEG'
        image = image.convert('RGB')

    img_bytes = io.BytesIO()
    image.save(img_bytes, format=format, **({'quality': 95} if format == 'JPEG' else {}))
    return img_bytes.getvalue()


def render_screen_to_data_uri(screen: Screen, size: Size = None, format: str = 'PNG') -> str:
    image = rasterize(screen, size)
    if format.upper() in ('JPEG', 'JPG'):
        return image_to_data_uri(image.convert('RGB'), 'JPEG')
    return image_to_data_uri(image, 'PNG')


def _sanitize_name(name: str) -> str:
    return re.sub(r'[^a-z0-9]', '_', name, flags=re.IGNORECASE).lower()


def export_filename(screen_name: str, size_name: str, format: str, timestamp: Union[int, str]) -> str:
    """Deterministic download name, e.g. screen_1_iphone_6_5__1700000000000.png"""
    ext = 'jpg' if format.upper() in ('JPEG', 'JPG') else 'png'
    return f"{_sanitize_name(screen_name)}_{_sanitize_name(size_name)}_{timestamp}.{ext}"


def export_session_zip(
    screens: Sequence[Screen],
    size_name: str = DEFAULT_EXPORT_SIZE,
    format: str = 'PNG',
    timestamp: Optional[Union[int, str]] = None,
) -> bytes:
    """Render every screen at one export size and pack them into a ZIP archive"""
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    buffer = io.BytesIO()
    used = set()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for i, screen in enumerate(screens):
            name = export_filename(screen.name, size_name, format, timestamp)
            if name in used:
                name = export_filename(f"{screen.name}_{i + 1}", size_name, format, timestamp)
            used.add(name)
            archive.writestr(name, render_screen_to_bytes(screen, size_name, format))
    logger.info("Exported %d screens at %s", len(screens), size_name)
    return buffer.getvalue()
