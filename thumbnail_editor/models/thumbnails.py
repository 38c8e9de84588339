from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

# Crop flag of a target size: a plain boolean, or an explicit anchor such as
# ("left", "top") describing which part of the source is kept.
CropFlag = Union[bool, Tuple[str, str]]


@dataclass(frozen=True, slots=True)
class TargetSize:
    """
    Named target size for renditions of a master image.

    A width or height of 0 means "no constraint on that axis": the rendition
    is scaled on the other axis only, preserving the aspect ratio.
    """

    name: str
    label: str
    width: int
    height: int
    crop: CropFlag = False

    @property
    def is_cropped(self) -> bool:
        return bool(self.crop)


@dataclass(slots=True)
class CropRequest:
    """Source crop rectangle plus the destination box it must fill."""

    src_x: int
    src_y: int
    src_w: int
    src_h: int
    dst_w: int
    dst_h: int
    # "#RRGGBB" or anything else (including None) for a transparent background.
    # Only meaningful when fit compositing is requested.
    fit_color: str | None = None


@dataclass(frozen=True, slots=True)
class FillCrop:
    """Crop exactly, then scale to the destination box (may distort)."""

    dst_w: int
    dst_h: int


@dataclass(frozen=True, slots=True)
class FitPlan:
    """
    Placement of the aspect-preserving scaled crop inside the destination box.

    The inner rectangle is fully contained in the destination and centered on
    the unconstrained axis, so exactly one of the offsets is 0.
    """

    inner_w: float
    inner_h: float
    offset_x: float
    offset_y: float


@dataclass(slots=True)
class Rendition:
    """
    A generated file for one (master image, target size) pair.

    `file` is the bare file name as stored in the metadata record; `path` is
    the resolved location on disk.
    """

    owner_id: str
    size_name: str
    path: str
    url: str
    file: str
    width: int
    height: int

    def to_record(self) -> dict:
        """Return the metadata record persisted for this rendition."""
        return {"file": self.file, "width": self.width, "height": self.height}


@dataclass(slots=True)
class ResizeParams:
    """
    Working parameters of one interactive resize.

    Pre-resize transforms receive an instance and return the (possibly new)
    instance that replaces it for the remaining steps.
    """

    owner_id: str
    size: TargetSize
    # Selected source rectangle.
    w: int
    h: int
    x: int
    y: int
    # Whether the result replaces the stored rendition.
    save: bool
    original_file: str
    fit_color: str | None = None
    # Filled in by the default transforms.
    dst_w: int | None = None
    dst_h: int | None = None
    tmpfile: str | None = None
    tmpurl: str | None = None
