"""
Pillow-backed image primitives.

The rest of the package only talks to images through PillowCodec so the
pixel operations stay in one place.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Tuple

from PIL import Image

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

# File formats that keep an alpha channel when saved.
ALPHA_FORMATS = {"PNG", "WEBP", "GIF", "TIFF"}


def format_for_path(path: str | Path, default: str = "PNG") -> str:
    """Return the Pillow format name implied by a file extension."""
    ext = Path(path).suffix.lower()
    return Image.registered_extensions().get(ext, default)


class PillowCodec:
    """Decode, transform and encode images with Pillow."""

    resample = Image.Resampling.LANCZOS

    def probe(self, contents: bytes) -> Tuple[int, int]:
        """Return the pixel size of encoded image bytes, verifying they decode."""
        with Image.open(BytesIO(contents)) as img:
            img.verify()
            return img.size

    def load(self, path: str | Path) -> Image.Image:
        """Decode an image fully into memory, keeping its file format."""
        with Image.open(path) as img:
            img.load()
            loaded = img.copy()
            loaded.format = img.format
        return loaded

    def crop(self, img: Image.Image, x: int, y: int, w: int, h: int) -> Image.Image:
        cropped = img.crop((x, y, x + w, y + h))
        cropped.format = img.format
        return cropped

    def scale(self, img: Image.Image, w: int, h: int) -> Image.Image:
        scaled = img.resize((max(1, int(w)), max(1, int(h))), self.resample)
        scaled.format = img.format
        return scaled

    def new_canvas(self, w: int, h: int, color: RGBA, image_format: str | None = None) -> Image.Image:
        """Allocate an RGBA canvas filled with `color`, tagged with a file format."""
        canvas = Image.new("RGBA", (w, h), color)
        canvas.format = image_format
        return canvas

    def composite_over(self, base: Image.Image, overlay: Image.Image, x: int, y: int) -> Image.Image:
        """Blend `overlay` over `base` at (x, y) using normal "over" compositing."""
        result = base.convert("RGBA") if base.mode != "RGBA" else base.copy()
        result.alpha_composite(overlay.convert("RGBA"), dest=(x, y))
        result.format = base.format
        return result

    def flatten(self, img: Image.Image) -> Image.Image:
        """
        Collapse alpha into a single-layer image matching the image's format.

        Formats without alpha support are flattened onto opaque white.
        """
        if img.mode not in ("RGBA", "LA", "PA") and "transparency" not in img.info:
            return img

        if img.format in ALPHA_FORMATS:
            flattened = img.convert("RGBA")
        else:
            rgba = img.convert("RGBA")
            backdrop = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
            backdrop.alpha_composite(rgba)
            flattened = backdrop.convert("RGB")
        flattened.format = img.format
        return flattened

    def save(self, img: Image.Image, path: str | Path, image_format: str | None = None) -> None:
        """Encode `img` to `path`; the format defaults to the path's extension."""
        image_format = image_format or format_for_path(path, default=img.format or "PNG")
        if image_format not in ALPHA_FORMATS and img.mode not in ("RGB", "L"):
            tagged = img.copy()
            tagged.format = image_format
            img = self.flatten(tagged)
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")

        save_kwargs = {}
        if image_format in ("JPEG", "WEBP"):
            save_kwargs["quality"] = 90
        img.save(path, format=image_format, **save_kwargs)
        logger.debug("Encoded %s image to %s", image_format, path)
