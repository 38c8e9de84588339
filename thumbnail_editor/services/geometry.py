"""
Crop geometry for thumbnail renditions.

Pure functions only: nothing here touches pixels or the filesystem. The
compositor and the image editor consume the plans produced here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from thumbnail_editor.models.thumbnails import CropFlag, CropRequest, FillCrop, FitPlan, TargetSize


logger = logging.getLogger(__name__)

# Aspect ratios closer than this are treated as equal and never fit-composited.
ASPECT_RATIO_TOLERANCE = 0.01

_HORIZONTAL_ANCHORS = ("left", "center", "right")
_VERTICAL_ANCHORS = ("top", "center", "bottom")


class GeometryError(ValueError):
    """Raised for degenerate crop rectangles or destination boxes."""


@dataclass(frozen=True, slots=True)
class IntermediateGeometry:
    """Source box and output size used to generate a baseline rendition."""

    src_x: int
    src_y: int
    src_w: int
    src_h: int
    dst_w: int
    dst_h: int


def resolve(crop: CropRequest, fit_requested: bool) -> FillCrop | FitPlan:
    """
    Decide how the source crop is mapped onto the destination box.

    Returns a FillCrop when no fit is requested or when the aspect ratios
    already match (within ASPECT_RATIO_TOLERANCE). Otherwise returns a FitPlan
    constrained on whichever axis keeps the scaled crop inside the box.
    """
    if crop.src_w <= 0 or crop.src_h <= 0:
        raise GeometryError(f"Invalid source rectangle: {crop.src_w}x{crop.src_h}")
    if crop.dst_w <= 0 or crop.dst_h <= 0:
        raise GeometryError(f"Invalid destination box: {crop.dst_w}x{crop.dst_h}")

    ar = crop.src_w / crop.src_h
    dst_ar = crop.dst_w / crop.dst_h

    if not fit_requested or abs(ar - dst_ar) <= ASPECT_RATIO_TOLERANCE:
        return FillCrop(dst_w=crop.dst_w, dst_h=crop.dst_h)

    logger.debug("AR: '%f'\tOAR: '%f'", ar, dst_ar)

    if dst_ar > ar:
        # Constrain to the destination height.
        inner_h = float(crop.dst_h)
        inner_w = crop.dst_h * ar
        offset_x = (crop.dst_w - inner_w) / 2
        offset_y = 0.0
    else:
        inner_w = float(crop.dst_w)
        inner_h = crop.dst_w / ar
        offset_x = 0.0
        offset_y = (crop.dst_h - inner_h) / 2

    return FitPlan(inner_w=inner_w, inner_h=inner_h, offset_x=offset_x, offset_y=offset_y)


def constrain_dimensions(current_w: int, current_h: int, max_w: int = 0, max_h: int = 0) -> Tuple[int, int]:
    """
    Scale (current_w, current_h) down to fit inside (max_w, max_h).

    A max of 0 leaves that axis unconstrained. Dimensions are never scaled up.
    """
    if not max_w and not max_h:
        return current_w, current_h

    ratio = 1.0
    if max_w > 0 and current_w > max_w:
        ratio = min(ratio, max_w / current_w)
    if max_h > 0 and current_h > max_h:
        ratio = min(ratio, max_h / current_h)

    return max(1, int(round(current_w * ratio))), max(1, int(round(current_h * ratio)))


def resolve_destination(size: TargetSize, w: int, h: int) -> Tuple[int, int]:
    """
    Compute the destination box for an interactive crop of w x h pixels.

    Cropped sizes always produce their nominal box; a 0 axis is derived from
    the selection's aspect ratio. Other sizes scale the selection to fit.
    """
    if w <= 0 or h <= 0:
        raise GeometryError(f"Invalid selection: {w}x{h}")

    if not size.is_cropped:
        return constrain_dimensions(w, h, size.width, size.height)

    dst_w, dst_h = size.width, size.height
    if not dst_w and not dst_h:
        return w, h
    if not dst_w:
        dst_w = max(1, int(round(dst_h * w / h)))
    elif not dst_h:
        dst_h = max(1, int(round(dst_w * h / w)))
    return dst_w, dst_h


def _crop_anchor(crop: CropFlag) -> Tuple[str, str]:
    if isinstance(crop, (tuple, list)) and len(crop) == 2:
        x_anchor, y_anchor = crop
        if x_anchor in _HORIZONTAL_ANCHORS and y_anchor in _VERTICAL_ANCHORS:
            return x_anchor, y_anchor
    return "center", "center"


def _anchored_offset(free: int, anchor: str) -> int:
    if anchor in ("left", "top"):
        return 0
    if anchor in ("right", "bottom"):
        return free
    return free // 2


def intermediate_dimensions(
    orig_w: int,
    orig_h: int,
    width: int,
    height: int,
    crop: CropFlag,
) -> IntermediateGeometry:
    """
    Compute how a baseline rendition is cut from the full-size master.

    Cropped sizes take the largest box with the target aspect ratio anchored by
    the crop position; other sizes keep the whole image and only scale down.
    The master is never scaled up: when it is already smaller than the target,
    the rendition keeps the master's dimensions on that axis.
    """
    if orig_w <= 0 or orig_h <= 0:
        raise GeometryError(f"Invalid master dimensions: {orig_w}x{orig_h}")
    if width < 0 or height < 0:
        raise GeometryError(f"Invalid target size: {width}x{height}")

    if not crop:
        dst_w, dst_h = constrain_dimensions(orig_w, orig_h, width, height)
        return IntermediateGeometry(0, 0, orig_w, orig_h, dst_w, dst_h)

    aspect = orig_w / orig_h
    new_w = min(width, orig_w)
    new_h = min(height, orig_h)
    if not new_w and not new_h:
        return IntermediateGeometry(0, 0, orig_w, orig_h, orig_w, orig_h)
    if not new_w:
        new_w = max(1, int(round(new_h * aspect)))
    if not new_h:
        new_h = max(1, int(round(new_w / aspect)))

    size_ratio = max(new_w / orig_w, new_h / orig_h)
    crop_w = min(orig_w, int(round(new_w / size_ratio)))
    crop_h = min(orig_h, int(round(new_h / size_ratio)))

    x_anchor, y_anchor = _crop_anchor(crop)
    src_x = _anchored_offset(orig_w - crop_w, x_anchor)
    src_y = _anchored_offset(orig_h - crop_h, y_anchor)

    return IntermediateGeometry(src_x, src_y, crop_w, crop_h, new_w, new_h)
