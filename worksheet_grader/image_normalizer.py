"""Image decoding, resizing and JPEG re-encoding for grading submissions."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import math
import re
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError, InputError
from .grading_types import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_DIMENSION,
    NormalizedImage,
    RawImage,
)

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w.+-]+=[\w.+-]+)*)(?P<b64>;base64)?,(?P<payload>.*)$",
    re.S,
)


def check_media_type(mime_type: Optional[str]) -> str:
    """Return the normalized media type or raise InputError if it is not an image."""
    if not isinstance(mime_type, str):
        raise InputError("Please select a valid image file.")
    normalized = mime_type.split(";")[0].strip().lower()
    if not normalized.startswith("image/"):
        raise InputError("Please select a valid image file.")
    return normalized


def decode_data_url(value: str, mime_type: Optional[str] = None) -> RawImage:
    """Build a RawImage from a ``data:<mime>;base64,<payload>`` string.

    A bare base64 payload is accepted when ``mime_type`` declares its type.
    """
    value = value.strip()
    match = _DATA_URL_RE.match(value)
    if match:
        if not match.group("b64"):
            raise InputError("Image data URL must be base64 encoded.")
        declared = match.group("mime") or mime_type
        payload = match.group("payload")
    else:
        declared = mime_type
        payload = value
    payload = "".join(payload.split())

    if not declared:
        raise InputError("Image media type is missing.")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputError("Image data is not valid base64.") from exc
    if not data:
        raise InputError("No image data provided")
    return RawImage(data=data, mime_type=declared)


def load_image(image_bytes: bytes) -> Image.Image:
    """Decode image bytes into a Pillow image with EXIF orientation applied."""
    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
    ) as exc:
        raise DecodeError(f"Invalid image bytes: {exc}") from exc
    return ImageOps.exif_transpose(img)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_target_size(
    width: int, height: int, max_dimension: int = DEFAULT_MAX_DIMENSION
) -> Tuple[int, int]:
    """Clamp the larger side to ``max_dimension`` keeping the aspect ratio."""
    if max(width, height) <= max_dimension:
        return width, height
    if width > height:
        scaled = _round_half_up(height * max_dimension / width)
        return max_dimension, max(1, scaled)
    scaled = _round_half_up(width * max_dimension / height)
    return max(1, scaled), max_dimension


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, "white")
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def encode_jpeg(img: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    buf = BytesIO()
    _flatten(img).save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def normalize_image_bytes(
    raw: RawImage,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> NormalizedImage:
    """Decode, bound and re-encode an uploaded image as JPEG."""
    check_media_type(raw.mime_type)
    if not raw.data:
        raise InputError("No image data provided")

    img = load_image(raw.data)
    source_width, source_height = img.size
    width, height = compute_target_size(source_width, source_height, max_dimension)
    if (width, height) != img.size:
        img = img.resize((width, height), Image.Resampling.LANCZOS)

    data = encode_jpeg(img, quality)
    logger.debug(
        "Normalized %s image %dx%d -> %dx%d (%d bytes)",
        raw.mime_type,
        source_width,
        source_height,
        width,
        height,
        len(data),
    )
    return NormalizedImage(
        data=data,
        width=width,
        height=height,
        quality=quality,
        source_width=source_width,
        source_height=source_height,
    )


async def normalize_image(
    raw: RawImage,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> NormalizedImage:
    """Run :func:`normalize_image_bytes` off the event loop."""
    return await asyncio.to_thread(
        normalize_image_bytes, raw, max_dimension=max_dimension, quality=quality
    )
