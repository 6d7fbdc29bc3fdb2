"""Server-side rendering of grading boxes onto the normalized image."""

from __future__ import annotations

from io import BytesIO
from typing import Iterable, Tuple

from PIL import Image, ImageDraw, ImageFont

from .coordinates import to_pixel_box
from .grading_types import NormalizedImage
from .image_normalizer import encode_jpeg
from .schema import GradingResult

CORRECT_COLOR: Tuple[int, int, int] = (34, 197, 94)
INCORRECT_COLOR: Tuple[int, int, int] = (239, 68, 68)
FILL_ALPHA = 26
OUTLINE_WIDTH = 2


def draw_results(img: Image.Image, results: Iterable[GradingResult]) -> Image.Image:
    """Return a copy of ``img`` with one labelled box per result."""
    base = img.convert("RGBA")
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = ImageFont.load_default()
    width, height = base.size

    for result in results:
        color = CORRECT_COLOR if result.is_correct else INCORRECT_COLOR
        x1, y1, x2, y2 = to_pixel_box(result.bounding_box, width, height)
        draw.rectangle(
            (x1, y1, x2, y2),
            fill=color + (FILL_ALPHA,),
            outline=color + (255,),
            width=OUTLINE_WIDTH,
        )
        label = str(result.line_number)
        left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
        label_y = max(0, y1 - (bottom - top) - 4)
        draw.rectangle(
            (x1, label_y, x1 + (right - left) + 6, label_y + (bottom - top) + 4),
            fill=color + (255,),
        )
        draw.text((x1 + 3, label_y + 2 - top), label, fill=(255, 255, 255, 255), font=font)

    return Image.alpha_composite(base, layer).convert("RGB")


def render_overlay(image: NormalizedImage, results: Iterable[GradingResult]) -> bytes:
    """Draw results onto a normalized image and re-encode it as JPEG."""
    with Image.open(BytesIO(image.data)) as img:
        annotated = draw_results(img, results)
    return encode_jpeg(annotated, image.quality)
