"""
Screenshot helpers for vision-language locating.

Crops a base64 PNG to a search area, and converts model bboxes into page pixels.
"""

from __future__ import annotations

import base64
import io
from typing import Sequence

from PIL import Image

from insight.contracts.types import Rect, Size

# Modes whose bboxes are normalized to a 0..1000 grid.
NORMALIZED_1000_MODES = {"doubao-vision", "vlm-ui-tars", "gemini"}
MIN_SEARCH_AREA_EDGE = 300.0


def decode_image(image_base64: str) -> Image.Image:
    if image_base64.startswith("data:"):
        image_base64 = image_base64.split(",", 1)[-1]
    return Image.open(io.BytesIO(base64.b64decode(image_base64)))


def encode_image(img: Image.Image) -> str:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def clamp_rect(rect: Rect, size: Size) -> Rect:
    left = min(max(rect.left, 0.0), size.width)
    top = min(max(rect.top, 0.0), size.height)
    right = min(max(rect.right, left), size.width)
    bottom = min(max(rect.bottom, top), size.height)
    return Rect(left=left, top=top, width=right - left, height=bottom - top)


def expand_search_area(rect: Rect, size: Size, min_edge: float = MIN_SEARCH_AREA_EDGE) -> Rect:
    """Grow ``rect`` around its center so each edge is at least ``min_edge``, within the page."""
    width = max(rect.width, min(min_edge, size.width))
    height = max(rect.height, min(min_edge, size.height))
    center = rect.center
    left = min(max(center.left - width / 2.0, 0.0), max(size.width - width, 0.0))
    top = min(max(center.top - height / 2.0, 0.0), max(size.height - height, 0.0))
    return clamp_rect(Rect(left=left, top=top, width=width, height=height), size)


def crop_image(image_base64: str, rect: Rect) -> str:
    """Return the ``rect`` region of a base64 screenshot as base64 PNG."""
    img = decode_image(image_base64)
    box = (int(rect.left), int(rect.top), int(round(rect.right)), int(round(rect.bottom)))
    return encode_image(img.crop(box))


def adapt_bbox(bbox: Sequence[float], size: Size, vl_mode: str | bool) -> Rect:
    """
    Convert a model bbox into page pixels for the given VL mode.

    qwen-vl answers in absolute pixels ``[x1, y1, x2, y2]``; doubao-vision and
    vlm-ui-tars use a 0..1000 grid; gemini uses ``[ymin, xmin, ymax, xmax]`` on 0..1000.
    """
    values = [float(v) for v in bbox[:4]]
    if vl_mode == "gemini":
        values = [values[1], values[0], values[3], values[2]]
    if vl_mode in NORMALIZED_1000_MODES:
        values = [
            values[0] * size.width / 1000.0,
            values[1] * size.height / 1000.0,
            values[2] * size.width / 1000.0,
            values[3] * size.height / 1000.0,
        ]
    return clamp_rect(Rect.from_bbox(values), size)


def offset_rect(rect: Rect, origin: Rect) -> Rect:
    """Translate a rect measured inside ``origin`` into page coordinates."""
    return Rect(left=rect.left + origin.left, top=rect.top + origin.top, width=rect.width, height=rect.height)


__all__ = [
    "adapt_bbox",
    "clamp_rect",
    "crop_image",
    "decode_image",
    "encode_image",
    "expand_search_area",
    "offset_rect",
]
