from __future__ import annotations

import logging
import re

from PIL import Image

from thumbnail_editor.models.thumbnails import CropRequest, FitPlan
from thumbnail_editor.services.codec import RGBA, PillowCodec


logger = logging.getLogger(__name__)

_FIT_COLOR_PATTERN = re.compile(r"^#[a-fA-F0-9]{6}$")

# Fallback background: white with zero alpha.
TRANSPARENT_WHITE: RGBA = (255, 255, 255, 0)


class CompositeError(RuntimeError):
    """Raised when the image library fails while compositing a fit crop."""


def parse_fit_color(value: str | None) -> RGBA:
    """
    Resolve the background used behind a fit crop.

    Only an exact "#RRGGBB" string yields an opaque color; every other value,
    including None and "transparent", resolves to transparent white.
    """
    if value is not None and _FIT_COLOR_PATTERN.match(value):
        return (int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16), 255)

    logger.debug("setting transparent/white")
    return TRANSPARENT_WHITE


def _placement(crop: CropRequest, plan: FitPlan) -> tuple[int, int, int, int]:
    """Round a fit plan to whole pixels that stay inside the destination box."""
    inner_w = min(crop.dst_w, max(1, int(round(plan.inner_w))))
    inner_h = min(crop.dst_h, max(1, int(round(plan.inner_h))))
    offset_x = min(crop.dst_w - inner_w, max(0, int(round(plan.offset_x))))
    offset_y = min(crop.dst_h - inner_h, max(0, int(round(plan.offset_y))))
    return inner_w, inner_h, offset_x, offset_y


def compose(
    codec: PillowCodec,
    image: Image.Image,
    crop: CropRequest,
    plan: FitPlan,
    background: RGBA,
) -> Image.Image:
    """
    Produce a dst_w x dst_h image with the scaled crop centered on a background.

    The source image is left untouched; the caller swaps in the returned image.
    Any failure inside the image library surfaces as CompositeError.
    """
    inner_w, inner_h, offset_x, offset_y = _placement(crop, plan)

    try:
        cropped = codec.crop(image, crop.src_x, crop.src_y, crop.src_w, crop.src_h)
        scaled = codec.scale(cropped, inner_w, inner_h)

        canvas = codec.new_canvas(crop.dst_w, crop.dst_h, background, image_format=image.format)
        composed = codec.composite_over(canvas, scaled, offset_x, offset_y)
        result = codec.flatten(composed)
    except Exception as exc:  # noqa: BLE001
        logger.error("Fit crop compositing failed: %s", exc)
        raise CompositeError("Image crop failed.") from exc

    return result
