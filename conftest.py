"""Shared fixtures: a throwaway upload area, store, registry and manager per test."""

from pathlib import Path

import pytest
from PIL import Image

from thumbnail_editor.services.sizes import SizeRegistry
from thumbnail_editor.services.storage import MetadataStore
from thumbnail_editor.services.thumbnails import ThumbnailManager


def write_image(path: Path, size=(800, 600), color=(200, 40, 40), mode="RGB") -> Path:
    """Write a solid test image; the format follows the file extension."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path)
    return path


@pytest.fixture
def store(tmp_path: Path) -> MetadataStore:
    return MetadataStore(
        metadata_dir=tmp_path / "metadata",
        upload_dir=tmp_path / "uploads",
        upload_url="/uploads",
    )


@pytest.fixture
def registry() -> SizeRegistry:
    return SizeRegistry(
        sizes={
            "thumbnail": {"width": 150, "height": 150, "crop": True},
            "medium": {"width": 300, "height": 300, "crop": False},
            "wide": {"width": 400, "height": 0, "crop": False},
        }
    )


@pytest.fixture
def manager(store: MetadataStore, registry: SizeRegistry) -> ThumbnailManager:
    return ThumbnailManager(store=store, registry=registry)


@pytest.fixture
def master(tmp_path: Path, store: MetadataStore) -> str:
    """Register an 800x600 JPEG master image and return its owner id."""
    source = write_image(tmp_path / "source" / "photo.jpg")
    store.create_image("img1", "photo.jpg", source.read_bytes(), 800, 600)
    return "img1"
