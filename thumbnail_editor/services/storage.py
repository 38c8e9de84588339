from __future__ import annotations

import json
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_OWNER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class MetadataStorageError(RuntimeError):
    """Raised when a metadata record cannot be read or written."""


class ImageNotFoundError(LookupError):
    """Raised when no master image is registered under an owner id."""


def sanitize_filename(filename: str, default: str = "image") -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("-", Path(filename).name).strip(".-")
    return name or default


def unique_filename(filename: str, taken: Iterable[str]) -> str:
    """Return `filename`, or `<stem>-<n><suffix>` with the lowest free n when it is taken."""
    taken = set(taken)
    if filename not in taken:
        return filename
    path = Path(filename)
    counter = 1
    while f"{path.stem}-{counter}{path.suffix}" in taken:
        counter += 1
    return f"{path.stem}-{counter}{path.suffix}"


class LocalFilesystem:
    """Thin wrapper over the local disk so the thumbnail manager can be tested in isolation."""

    def exists(self, path: str | Path) -> bool:
        return Path(path).is_file()

    def ensure_dir(self, path: str | Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def move(self, src: str | Path, dst: str | Path) -> None:
        """Atomically replace `dst` with `src` (both must be on the same volume)."""
        os.replace(src, dst)

    def delete(self, path: str | Path | None) -> bool:
        """Remove a file if it exists. Returns True when something was deleted."""
        if not path:
            return False
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        return True

    def remove_tree(self, path: str | Path) -> bool:
        """Remove a directory and everything below it. Returns True when it existed."""
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        return True


class MetadataStore:
    """
    JSON-file backed attachment metadata.

    Each master image gets one record under `<metadata_dir>/<owner_id>.json`:

        {"file": "<owner_id>/photo.jpg", "width": 1600, "height": 1200,
         "sizes": {"thumbnail": {"file": "photo-150x150.jpg", "width": 150, "height": 150}}}

    `file` is relative to the upload directory; rendition files are bare names
    that live next to the master file.
    """

    def __init__(self, metadata_dir: Path, upload_dir: Path, upload_url: str = "/uploads") -> None:
        self._metadata_dir = metadata_dir
        self._upload_dir = upload_dir
        self._upload_url = upload_url.rstrip("/")
        self._metadata_dir.mkdir(parents=True, exist_ok=True)
        self._upload_dir.mkdir(parents=True, exist_ok=True)

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def _record_path(self, owner_id: str) -> Path:
        if not _OWNER_ID_PATTERN.match(owner_id):
            raise ImageNotFoundError(f"Invalid image id {owner_id!r}")
        return self._metadata_dir / f"{owner_id}.json"

    def _read(self, owner_id: str) -> Dict[str, Any]:
        path = self._record_path(owner_id)
        if not path.exists():
            raise ImageNotFoundError(f"No image registered for id {owner_id}")
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise MetadataStorageError(f"Failed to read metadata for {owner_id}.") from exc

    def _write(self, owner_id: str, record: Dict[str, Any]) -> None:
        path = self._record_path(owner_id)
        staging = path.with_suffix(".json.tmp")
        try:
            staging.write_text(json.dumps(record, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(staging, path)
        except OSError as exc:
            raise MetadataStorageError(f"Failed to write metadata for {owner_id}.") from exc

    def create_image(self, owner_id: str, filename: str, contents: bytes, width: int, height: int) -> Path:
        """
        Persist a new master image and its (empty) rendition metadata.

        Files are written to disk under `<upload_dir>/<owner_id>/`.
        """
        image_dir = self._upload_dir / owner_id
        image_dir.mkdir(parents=True, exist_ok=True)
        master_path = image_dir / sanitize_filename(filename)
        try:
            master_path.write_bytes(contents)
        except OSError as exc:
            raise MetadataStorageError("Failed to persist image file to disk.") from exc

        self._write(
            owner_id,
            {
                "file": master_path.relative_to(self._upload_dir).as_posix(),
                "width": width,
                "height": height,
                "sizes": {},
            },
        )
        logger.info("Registered image %s at %s", owner_id, master_path)
        return master_path

    def get_attached_file(self, owner_id: str) -> str:
        record = self._read(owner_id)
        return str(self._upload_dir / record["file"])

    def get_renditions(self, owner_id: str) -> Dict[str, Dict[str, Any]]:
        return dict(self._read(owner_id).get("sizes") or {})

    def set_renditions(self, owner_id: str, renditions: Dict[str, Dict[str, Any]]) -> None:
        record = self._read(owner_id)
        record["sizes"] = dict(renditions)
        self._write(owner_id, record)

    def url_for(self, path: str | Path) -> str:
        """Map a file under the upload directory to its public URL."""
        try:
            relative = Path(path).resolve().relative_to(self._upload_dir.resolve())
        except ValueError:
            return Path(path).resolve().as_uri()
        return f"{self._upload_url}/{relative.as_posix()}"
