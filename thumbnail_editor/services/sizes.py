from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Mapping

from thumbnail_editor.models.thumbnails import CropFlag, TargetSize


logger = logging.getLogger(__name__)

DEFAULT_LABELS: Dict[str, str] = {
    "thumbnail": "Thumbnail",
    "medium": "Medium",
    "large": "Large",
    "full": "Full Size",
}

DEFAULT_SIZES: Dict[str, Dict[str, Any]] = {
    "thumbnail": {"width": 150, "height": 150, "crop": True},
    "medium": {"width": 300, "height": 300, "crop": False},
    "medium_large": {"width": 768, "height": 0, "crop": False},
    "large": {"width": 1024, "height": 1024, "crop": False},
}


class SizeRegistryError(ValueError):
    """Raised when a size definition cannot be parsed."""


def _coerce_int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError, OverflowError):
        return 0


def _coerce_crop(value: Any) -> CropFlag:
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            raise SizeRegistryError(f"Crop position must have two items, got {value!r}")
        return (str(value[0]), str(value[1]))
    if isinstance(value, bool):
        return value
    return bool(_coerce_int(value))


class SizeRegistry:
    """
    Ordered collection of the named target sizes renditions are generated for.

    Registration order is the order `list_sizes` (and therefore every listing of
    renditions) uses.
    """

    def __init__(
        self,
        sizes: Mapping[str, Mapping[str, Any]] | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        self._labels: Dict[str, str] = dict(DEFAULT_LABELS)
        if labels:
            self._labels.update(labels)
        self._sizes: Dict[str, TargetSize] = {}
        for name, definition in (sizes if sizes is not None else DEFAULT_SIZES).items():
            self.add_size(
                name,
                definition.get("width"),
                definition.get("height"),
                definition.get("crop", False),
                label=definition.get("label"),
            )

    @classmethod
    def from_json(cls, raw: str) -> "SizeRegistry":
        """Build a registry from a JSON object of {name: {width, height, crop, label}}."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SizeRegistryError("Size definitions are not valid JSON.") from exc
        if not isinstance(data, dict):
            raise SizeRegistryError("Size definitions must be a JSON object keyed by size name.")
        return cls(sizes=data)

    @classmethod
    def from_env(cls) -> "SizeRegistry":
        raw = os.getenv("THUMBNAIL_SIZES")
        if not raw:
            return cls()
        logger.info("Loading thumbnail sizes from THUMBNAIL_SIZES")
        return cls.from_json(raw)

    def add_size(
        self,
        name: str,
        width: Any,
        height: Any,
        crop: Any = False,
        label: str | None = None,
    ) -> TargetSize:
        """Register (or replace) a target size; values are coerced to ints."""
        size = TargetSize(
            name=name,
            label=label or self._labels.get(name, name),
            width=max(0, _coerce_int(width)),
            height=max(0, _coerce_int(height)),
            crop=_coerce_crop(crop),
        )
        self._sizes[name] = size
        return size

    def get(self, name: str) -> TargetSize | None:
        return self._sizes.get(name)

    def list_sizes(self) -> List[TargetSize]:
        return list(self._sizes.values())
