"""Screenshots, logos and rendered screens travel as self-contained data URIs."""
import base64
import binascii
import io
import re
from typing import Tuple, Union

from PIL import Image


_DATA_URI_RE = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$', re.DOTALL)

ImageRef = Union[str, bytes, Image.Image]


class ImageLoadError(Exception):
    """Raised when an image reference cannot be decoded"""
    pass


def detect_mime_type(data: bytes) -> str:
    """Guess the MIME type from the leading bytes, defaulting to PNG"""
    if data.startswith(b'\x89PNG'):
        return "image/png"
    if data.startswith(b'\xff\xd8\xff'):
        return "image/jpeg"
    if data.startswith(b'RIFF') and b'WEBP' in data[:20]:
        return "image/webp"
    if data[:6] in (b'GIF87a', b'GIF89a'):
        return "image/gif"
    return "image/png"


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """
    Split a data URI into its MIME type and raw bytes.

    Raises:
        ImageLoadError: If the string is not a base64 data URI
    """
    match = _DATA_URI_RE.match(uri.strip()) if isinstance(uri, str) else None
    if not match or not match.group('b64'):
        raise ImageLoadError("Expected a base64 data URI")
    try:
        data = base64.b64decode(match.group('data'), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"Invalid base64 payload: {e}") from e
    mime_type = match.group('mime') or detect_mime_type(data)
    return mime_type, data


def to_data_uri(data: bytes, mime_type: str = None) -> str:
    mime_type = mime_type or detect_mime_type(data)
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def image_to_data_uri(image: Image.Image, format: str = 'PNG') -> str:
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return to_data_uri(buffer.getvalue(), f"image/{format.lower()}")


def image_ref_to_bytes(ref: ImageRef) -> Tuple[str, bytes]:
    """Return (mime_type, bytes) for any supported image reference"""
    if isinstance(ref, Image.Image):
        buffer = io.BytesIO()
        ref.save(buffer, format='PNG')
        return "image/png", buffer.getvalue()
    if isinstance(ref, (bytes, bytearray)):
        data = bytes(ref)
        return detect_mime_type(data), data
    if isinstance(ref, str):
        return decode_data_uri(ref)
    raise ImageLoadError(f"Unsupported image reference type: {type(ref).__name__}")


def load_image(ref: ImageRef) -> Image.Image:
    """
    Decode an image reference into a fully loaded PIL image.

    Args:
        ref: Data URI, raw encoded bytes or an already decoded image

    Returns:
        PIL Image

    Raises:
        ImageLoadError: If the reference is empty, malformed or not an image
    """
    if isinstance(ref, Image.Image):
        return ref
    if not ref:
        raise ImageLoadError("Empty image reference")

    _, data = image_ref_to_bytes(ref)
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Could not decode image: {e}") from e
    return image
