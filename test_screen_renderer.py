import io
import zipfile

import pytest
from PIL import Image

from design_schema import Gradient, Layer, MockupFrame, Screen
from image_data import ImageLoadError, decode_data_uri, load_image
from screen_renderer import (
    EXPORT_SIZES,
    export_filename,
    export_session_zip,
    parse_color,
    rasterize,
    render_screen_to_bytes,
    render_screen_to_data_uri,
    resolve_export_size,
)

SMALL = (124, 268)


def _screen(*layers, background="#FFFFFF", name="Screen 1"):
    return Screen(id="screen_1", name=name, backgroundColor=background, layers=tuple(layers))


def _full(layer_id="bg", **fields):
    return Layer(id=layer_id, type="background", width=1242, height=2688, **fields)


def test_default_size_is_logical_canvas():
    assert rasterize(_screen()).size == (1242, 2688)
    assert resolve_export_size(None) == (1242, 2688)


def test_export_sizes():
    assert resolve_export_size('iPhone 6.7"') == (1290, 2796)
    assert resolve_export_size('iPad Pro 11"') == (1668, 2388)
    assert len(EXPORT_SIZES) == 5
    with pytest.raises(ValueError):
        resolve_export_size("Pixel 8")


def test_different_aspect_ratio_is_letterboxed_with_background():
    screen = _screen(_full(backgroundColor="#0000FF"), background="#FF0000")
    image = rasterize(screen, (400, 200))

    assert image.size == (400, 200)
    assert image.getpixel((5, 100))[:3] == (255, 0, 0)
    assert image.getpixel((200, 100))[:3] == (0, 0, 255)


def test_rgba_color_blends_over_background():
    screen = _screen(
        _full(backgroundColor="#000000"),
        Layer(id="overlay", type="decoration", width=1242, height=2688, backgroundColor="rgba(255, 255, 255, 0.5)"),
    )
    r, g, b, _ = rasterize(screen, SMALL).getpixel((60, 130))
    assert 120 <= r <= 136 and r == g == b


def test_parse_color():
    assert parse_color("#3B82F6") == (59, 130, 246, 255)
    assert parse_color("rgba(255, 255, 255, 0.15)") == (255, 255, 255, 38)
    assert parse_color("not a color") == (255, 255, 255, 255)


def test_vertical_gradient_runs_top_to_bottom():
    gradient = Gradient(colors=("#000000", "#FFFFFF"), angle=180)
    image = rasterize(_screen(_full(backgroundGradient=gradient)), SMALL)
    top = image.getpixel((62, 27))[0]
    bottom = image.getpixel((62, 240))[0]
    assert top < 60
    assert bottom > 195


def test_horizontal_gradient_runs_left_to_right():
    gradient = Gradient(colors=("#000000", "#FFFFFF"), angle=90)
    image = rasterize(_screen(_full(backgroundGradient=gradient)), SMALL)
    assert image.getpixel((12, 134))[0] < 60
    assert image.getpixel((112, 134))[0] > 195


def _mockup(content):
    return Layer(id="mockup", type="mockup", content=content, x=100, y=200, width=1042, height=2288,
                 mockupFrame=MockupFrame(x=40, y=40, width=962, height=2208, borderRadius=100))


def test_mockup_shows_screenshot(solid_image):
    image = rasterize(_screen(_mockup(solid_image("#FF0000"))), SMALL)
    assert image.getpixel((62, 134))[:3] == (255, 0, 0)


def test_broken_screenshot_renders_placeholder():
    image = rasterize(_screen(_mockup("data:image/png;base64,bm90IGFuIGltYWdl")), SMALL)
    assert image.getpixel((62, 134))[:3] == (229, 231, 235)


def test_text_layer_draws_ink():
    text = Layer(id="headline", type="text", content="Track Every Expense", x=80, y=180, width=1082,
                 height=300, fontSize=120, color="#000000", bold=True, align="center")
    image = rasterize(_screen(_full(backgroundColor="#FFFFFF"), text), SMALL).convert("L")
    band = image.crop((0, 15, 124, 35))
    assert min(band.getdata()) < 128


def test_png_and_jpeg_bytes():
    screen = _screen(_full(backgroundColor="#3B82F6"))
    png = render_screen_to_bytes(screen, SMALL)
    jpeg = render_screen_to_bytes(screen, SMALL, format="jpeg")
    assert png.startswith(b"\x89PNG")
    assert jpeg.startswith(b"\xff\xd8")
    assert Image.open(io.BytesIO(png)).size == SMALL


def test_export_filename():
    assert export_filename("Screen 1", 'iPhone 6.5"', "PNG", 1700000000000) == \
        "screen_1_iphone_6_5__1700000000000.png"
    assert export_filename("Hero!", 'iPad Pro 11"', "JPEG", 1).endswith(".jpg")


def test_zip_holds_one_file_per_screen():
    screens = [_screen(name="Screen"), _screen(name="Screen").model_copy(update={"id": "screen_2"})]
    data = export_session_zip(screens, 'iPhone 5.5"', timestamp=42)
    names = zipfile.ZipFile(io.BytesIO(data)).namelist()
    assert names == ["screen_iphone_5_5__42.png", "screen_2_iphone_5_5__42.png"]


def test_data_uri_decodes_to_png_of_export_size():
    uri = render_screen_to_data_uri(_screen(_full(backgroundColor="#3B82F6")), SMALL)
    mime_type, data = decode_data_uri(uri)
    image = Image.open(io.BytesIO(data))
    assert mime_type == "image/png"
    assert image.format == "PNG"
    assert image.size == SMALL
    assert image.getpixel((60, 130))[:3] == (59, 130, 246)


def test_jpeg_data_uri():
    uri = render_screen_to_data_uri(_screen(), SMALL, "jpg")
    mime_type, data = decode_data_uri(uri)
    assert mime_type == "image/jpeg"
    assert Image.open(io.BytesIO(data)).size == SMALL


def test_broken_screenshot_keeps_the_other_layers():
    text = Layer(id="headline", type="text", content="Track Every Expense", x=80, y=20, width=1082,
                 height=150, fontSize=120, color="#000000", bold=True, align="center")
    screen = _screen(_full(backgroundColor="#FFFF00"), _mockup("data:image/png;base64,bm90IGFuIGltYWdl"), text)
    image = rasterize(screen, SMALL)

    assert image.getpixel((0, 0))[:3] == (255, 255, 0)
    assert image.getpixel((62, 134))[:3] == (229, 231, 235)
    band = image.convert("L").crop((0, 0, 124, 16))
    assert min(band.getdata()) < 128


def test_broken_image_layer_is_skipped():
    logo = Layer(id="logo", type="image", content="data:image/png;base64,bm90IGFuIGltYWdl",
                 x=0, y=0, width=1242, height=2688)
    image = rasterize(_screen(_full(backgroundColor="#FF0000"), logo), SMALL)
    assert image.getpixel((60, 130))[:3] == (255, 0, 0)


def test_oversized_screenshot_renders_placeholder(solid_image, monkeypatch):
    screenshot = solid_image("#FF0000")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    with pytest.raises(ImageLoadError):
        load_image(screenshot)
    image = rasterize(_screen(_mockup(screenshot)), SMALL)
    assert image.getpixel((62, 134))[:3] == (229, 231, 235)


def test_huge_layer_is_clipped_to_the_output():
    huge = Layer(id="wash", type="decoration", width=1e7, height=1e7, backgroundColor="#00FF00")
    image = rasterize(_screen(huge), SMALL)
    assert image.size == SMALL
    assert image.getpixel((60, 130))[:3] == (0, 255, 0)
    assert image.getpixel((123, 267))[:3] == (0, 255, 0)
