"""
Image editor bound to a single master image.

Mirrors the editor contract the thumbnail manager relies on: load once, crop
(optionally fit-composited onto a background), save, and generate baseline
intermediate sizes next to the master file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable

from PIL import Image

from thumbnail_editor.models.thumbnails import CropFlag, CropRequest, FitPlan
from thumbnail_editor.services.codec import PillowCodec
from thumbnail_editor.services.compositor import compose, parse_fit_color
from thumbnail_editor.services.geometry import intermediate_dimensions, resolve
from thumbnail_editor.services.storage import unique_filename


logger = logging.getLogger(__name__)


class ImageEditorError(RuntimeError):
    """Raised when the editor cannot load, transform or write its image."""


class ImageEditor:
    """Holds the working image for one source file."""

    def __init__(self, path: str | Path, codec: PillowCodec | None = None) -> None:
        self.path = Path(path)
        self.codec = codec or PillowCodec()
        self._image: Image.Image | None = None

    @classmethod
    def open(cls, path: str | Path, codec: PillowCodec | None = None) -> "ImageEditor":
        editor = cls(path, codec=codec)
        editor.load()
        return editor

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise ImageEditorError(f"No image loaded for {self.path}")
        return self._image

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def load(self) -> None:
        try:
            self._image = self.codec.load(self.path)
        except (OSError, ValueError) as exc:
            raise ImageEditorError(f"File is not an image: {self.path}") from exc

    def crop(
        self,
        src_x: int,
        src_y: int,
        src_w: int,
        src_h: int,
        dst_w: int | None = None,
        dst_h: int | None = None,
        fit_color: str | None = None,
    ) -> None:
        """
        Crop the working image and scale it to (dst_w, dst_h).

        Passing a fit_color (any value, valid or not) requests fit mode: when the
        aspect ratios differ, the crop is scaled without distortion and centered
        on a background of that color instead of being stretched.
        """
        crop = CropRequest(
            src_x=src_x,
            src_y=src_y,
            src_w=src_w,
            src_h=src_h,
            dst_w=src_w if dst_w is None else dst_w,
            dst_h=src_h if dst_h is None else dst_h,
            fit_color=fit_color,
        )
        plan = resolve(crop, fit_requested=fit_color is not None)

        if isinstance(plan, FitPlan):
            self._image = compose(self.codec, self.image, crop, plan, parse_fit_color(fit_color))
            return

        try:
            cropped = self.codec.crop(self.image, crop.src_x, crop.src_y, crop.src_w, crop.src_h)
            if (plan.dst_w, plan.dst_h) != cropped.size:
                cropped = self.codec.scale(cropped, plan.dst_w, plan.dst_h)
        except (OSError, ValueError) as exc:
            raise ImageEditorError(f"Image crop failed: {self.path}") from exc
        self._image = cropped

    def save(self, path: str | Path, image_format: str | None = None) -> None:
        try:
            self.codec.save(self.image, path, image_format=image_format)
        except (OSError, ValueError, KeyError) as exc:
            raise ImageEditorError(f"Could not write image to {path}") from exc

    def make_intermediate_size(
        self, width: int, height: int, crop: CropFlag, taken: Iterable[str] = ()
    ) -> Dict[str, int | str]:
        """
        Write a baseline rendition for a target size next to the master file.

        Returns the metadata record (file name and final pixel size). The master
        is never scaled up, so small masters yield renditions at their own size.
        File names in `taken` belong to other renditions and are never overwritten.
        """
        orig_w, orig_h = self.size
        geometry = intermediate_dimensions(orig_w, orig_h, width, height, crop)

        try:
            resized = self.codec.crop(self.image, geometry.src_x, geometry.src_y, geometry.src_w, geometry.src_h)
            if (geometry.dst_w, geometry.dst_h) != resized.size:
                resized = self.codec.scale(resized, geometry.dst_w, geometry.dst_h)
        except (OSError, ValueError) as exc:
            raise ImageEditorError(f"Image resize failed: {self.path}") from exc

        file_name = unique_filename(f"{self.path.stem}-{geometry.dst_w}x{geometry.dst_h}{self.path.suffix}", taken)
        destination = self.path.parent / file_name
        try:
            self.codec.save(resized, destination)
        except (OSError, ValueError, KeyError) as exc:
            raise ImageEditorError(f"Could not write image to {destination}") from exc

        logger.info("Generated intermediate size %s (%dx%d)", destination, geometry.dst_w, geometry.dst_h)
        return {"file": file_name, "width": geometry.dst_w, "height": geometry.dst_h}
