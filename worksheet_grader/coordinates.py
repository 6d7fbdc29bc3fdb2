"""Mapping of model bounding boxes onto the displayed image.

The model reports boxes as ``(ymin, xmin, ymax, xmax)`` on a fixed 0-1000
scale relative to the image content, so the mapping does not need the
image's pixel size. The displayed image must keep its aspect ratio.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .errors import GeometryError

BOX_SCALE = 1000

PixelBox = Tuple[int, int, int, int]  # (x1, y1, x2, y2)


@dataclass(frozen=True)
class BoxGeometry:
    """Overlay rectangle as percentages of the displayed image box."""

    top: float
    left: float
    height: float
    width: float

    def to_css(self) -> Dict[str, str]:
        return {
            "top": _percent(self.top),
            "left": _percent(self.left),
            "height": _percent(self.height),
            "width": _percent(self.width),
        }


def _percent(value: float) -> str:
    return f"{value:g}%"


def check_bounding_box(box: Sequence[int]) -> Tuple[int, int, int, int]:
    """Return ``box`` as a tuple or raise GeometryError if it is unusable."""
    if len(box) != 4:
        raise GeometryError(f"Bounding box needs 4 values, got {len(box)}")
    ymin, xmin, ymax, xmax = box
    if not 0 <= ymin < ymax <= BOX_SCALE:
        raise GeometryError(f"Invalid vertical extent {ymin}..{ymax}")
    if not 0 <= xmin < xmax <= BOX_SCALE:
        raise GeometryError(f"Invalid horizontal extent {xmin}..{xmax}")
    return ymin, xmin, ymax, xmax


def to_percentages(box: Sequence[int]) -> BoxGeometry:
    """Convert a 0-1000 box to top/left/height/width percentages."""
    if len(box) != 4:
        raise GeometryError(f"Bounding box needs 4 values, got {len(box)}")
    ymin, xmin, ymax, xmax = box
    factor = BOX_SCALE / 100
    return BoxGeometry(
        top=ymin / factor,
        left=xmin / factor,
        height=(ymax - ymin) / factor,
        width=(xmax - xmin) / factor,
    )


def to_pixel_box(box: Sequence[int], width: int, height: int) -> PixelBox:
    """Scale a 0-1000 box to pixel corners clamped to the image bounds."""
    ymin, xmin, ymax, xmax = check_bounding_box(box)

    def _scale(value: int, size: int) -> int:
        return max(0, min(int(round(value * size / BOX_SCALE)), size))

    return (
        _scale(xmin, width),
        _scale(ymin, height),
        _scale(xmax, width),
        _scale(ymax, height),
    )
