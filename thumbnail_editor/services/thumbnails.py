"""
Thumbnail lifecycle management.

A ThumbnailManager keeps one rendition per (image, target size):
- `ensure` generates the baseline rendition when its record or file is missing;
- `resize` re-crops a rendition interactively, either as a preview or as a
  committed replacement of the stored rendition;
- `list_all` ensures every registered size, in registry order.

Metadata only changes after the new file is fully staged. A committed file is
moved into place, and a superseded file removed, only after the metadata
pointing at it is saved.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List
from uuid import uuid4

from thumbnail_editor.models.thumbnails import Rendition, ResizeParams, TargetSize
from thumbnail_editor.services.codec import PillowCodec, format_for_path
from thumbnail_editor.services.compositor import CompositeError
from thumbnail_editor.services.geometry import GeometryError, resolve_destination
from thumbnail_editor.services.image_editor import ImageEditor, ImageEditorError
from thumbnail_editor.services.sizes import SizeRegistry
from thumbnail_editor.services.storage import (
    LocalFilesystem,
    MetadataStorageError,
    MetadataStore,
    sanitize_filename,
)


logger = logging.getLogger(__name__)

PreResizeTransform = Callable[[ResizeParams], ResizeParams]


class ThumbnailOperationError(RuntimeError):
    """Raised when loading, cropping or writing a rendition fails."""

    def __init__(self, message: str, subject: str) -> None:
        super().__init__(message)
        # The file path or size name the failure is about.
        self.subject = subject


class ThumbnailManager:
    def __init__(
        self,
        store: MetadataStore,
        registry: SizeRegistry,
        filesystem: LocalFilesystem | None = None,
        codec: PillowCodec | None = None,
        preview_dir: str = "ptetmp",
        transforms: List[PreResizeTransform] | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._fs = filesystem or LocalFilesystem()
        self._codec = codec or PillowCodec()
        self._preview_dir = preview_dir
        self._transforms: List[PreResizeTransform] = list(transforms or [])
        # One lock per image: all sizes of an image share a metadata record.
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def registry(self) -> SizeRegistry:
        return self._registry

    def add_transform(self, transform: PreResizeTransform) -> None:
        """
        Register a pre-resize transform.

        Transforms run in registration order after the built-in ones, and each
        return value replaces the working parameters.
        """
        self._transforms.append(transform)

    def _lock_for(self, owner_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(owner_id, threading.RLock())

    def _open_editor(self, path: str) -> ImageEditor:
        try:
            return ImageEditor.open(path, codec=self._codec)
        except ImageEditorError as exc:
            logger.error("Unable to load file %s: %s", path, exc)
            raise ThumbnailOperationError(f"Unable to load file: {path}", path) from exc

    def register_image(self, owner_id: str, filename: str, contents: bytes) -> Path:
        """Store an uploaded master image; renditions are generated on first use."""
        try:
            width, height = self._codec.probe(contents)
        except (OSError, ValueError) as exc:
            raise ThumbnailOperationError(f"File is not an image: {filename}", filename) from exc
        return self._store.create_image(owner_id, filename, contents, width, height)

    def _to_rendition(self, owner_id: str, size: TargetSize, master: Path, record: Dict) -> Rendition:
        path = master.parent / record["file"]
        return Rendition(
            owner_id=owner_id,
            size_name=size.name,
            path=str(path),
            url=self._store.url_for(path),
            file=record["file"],
            width=int(record["width"]),
            height=int(record["height"]),
        )

    def _files_of_other_sizes(self, owner_id: str, size_name: str) -> Dict[str, str]:
        """Map each file referenced by another size of the image to that size's name."""
        return {
            record["file"]: name
            for name, record in self._store.get_renditions(owner_id).items()
            if name != size_name and record.get("file")
        }

    def ensure(self, owner_id: str, size: TargetSize) -> Rendition:
        """Return the stored rendition, generating it first if it is missing."""
        with self._lock_for(owner_id):
            master = Path(self._store.get_attached_file(owner_id))
            renditions = self._store.get_renditions(owner_id)
            record = renditions.get(size.name)

            if record is None or not self._fs.exists(master.parent / record["file"]):
                logger.info("Generating missing %s rendition for image %s", size.name, owner_id)
                editor = self._open_editor(str(master))
                try:
                    record = editor.make_intermediate_size(
                        size.width,
                        size.height,
                        size.crop,
                        taken=self._files_of_other_sizes(owner_id, size.name),
                    )
                except (GeometryError, ImageEditorError) as exc:
                    logger.error("Failed to generate %s for %s: %s", size.name, master, exc)
                    raise ThumbnailOperationError(f"Error generating image: {size.label}", size.name) from exc
                renditions[size.name] = record
                self._store.set_renditions(owner_id, renditions)

            return self._to_rendition(owner_id, size, master, record)

    def list_all(self, owner_id: str) -> List[Rendition]:
        return [self.ensure(owner_id, size) for size in self._registry.list_sizes()]

    def save(self, rendition: Rendition) -> None:
        """Persist a rendition's metadata record."""
        with self._lock_for(rendition.owner_id):
            renditions = self._store.get_renditions(rendition.owner_id)
            renditions[rendition.size_name] = rendition.to_record()
            self._store.set_renditions(rendition.owner_id, renditions)

    def _preview_dir_for(self, owner_id: str, size: TargetSize) -> Path:
        return self._store.upload_dir / self._preview_dir / owner_id / sanitize_filename(size.name)

    def _assign_destination(self, params: ResizeParams) -> ResizeParams:
        params.dst_w, params.dst_h = resolve_destination(params.size, params.w, params.h)
        return params

    def _assign_temporary_file(self, params: ResizeParams) -> ResizeParams:
        # Each crop of each size gets its own file, so no other rendition is overwritten.
        selection = f"{params.size.name}:{params.x},{params.y},{params.w},{params.h},{params.fit_color}"
        digest = hashlib.sha1(selection.encode("utf-8")).hexdigest()[:8]
        original = Path(params.original_file)
        file_name = f"{original.stem}-{params.dst_w}x{params.dst_h}-{digest}{original.suffix}"
        if params.save:
            directory = original.parent
        else:
            directory = self._preview_dir_for(params.owner_id, params.size)
        params.tmpfile = str(directory / file_name)
        params.tmpurl = self._store.url_for(params.tmpfile)
        return params

    def _prepare(self, params: ResizeParams) -> ResizeParams:
        for transform in (self._assign_destination, self._assign_temporary_file, *self._transforms):
            params = transform(params)
        return params

    def resize(
        self,
        owner_id: str,
        size: TargetSize,
        w: int,
        h: int,
        x: int,
        y: int,
        commit: bool = False,
        fit_color: str | None = None,
    ) -> Rendition:
        """
        Crop (x, y, w, h) of the master image into a new rendition for `size`.

        Without `commit` the result is a preview: it is written to the temporary
        location and returned, while the stored rendition stays untouched. A
        commit stages the new file and only moves it into place once the
        metadata pointing at it has been saved.
        """
        with self._lock_for(owner_id):
            current = self.ensure(owner_id, size)
            try:
                params = self._prepare(
                    ResizeParams(
                        owner_id=owner_id,
                        size=size,
                        w=w,
                        h=h,
                        x=x,
                        y=y,
                        save=commit,
                        original_file=self._store.get_attached_file(owner_id),
                        fit_color=fit_color,
                    )
                )
            except GeometryError as exc:
                raise ThumbnailOperationError(f"Error cropping image: {size.name}", size.name) from exc

            tmpfile = Path(params.tmpfile)
            if params.save:
                owner = self._files_of_other_sizes(owner_id, params.size.name).get(tmpfile.name)
                if owner is not None and tmpfile.parent == Path(current.path).parent:
                    logger.error("Refusing to overwrite %s, it belongs to the %s rendition", tmpfile, owner)
                    raise ThumbnailOperationError(
                        f"Error writing image: {params.size.label} to {tmpfile}", str(tmpfile)
                    )

            editor = self._open_editor(params.original_file)

            try:
                editor.crop(params.x, params.y, params.w, params.h, params.dst_w, params.dst_h, fit_color=params.fit_color)
            except (GeometryError, CompositeError, ImageEditorError) as exc:
                logger.error("Error cropping %s for image %s: %s", params.size.name, owner_id, exc)
                raise ThumbnailOperationError(
                    f"Error cropping image: {params.size.name}", params.size.name
                ) from exc

            staging = self._stage(editor, tmpfile, params.size)

            rendition = Rendition(
                owner_id=owner_id,
                size_name=params.size.name,
                path=str(tmpfile),
                url=params.tmpurl,
                file=tmpfile.name,
                width=params.dst_w,
                height=params.dst_h,
            )

            if params.save:
                self._commit(current, rendition, staging, params.size)
            else:
                self._publish(staging, tmpfile, params.size)

            return rendition

    def _write_failed(self, staging: Path, tmpfile: Path, size: TargetSize, exc: Exception) -> ThumbnailOperationError:
        if self._fs.exists(staging):
            self._fs.delete(staging)
        logger.error("Error writing %s to %s: %s", size.label, tmpfile, exc)
        return ThumbnailOperationError(f"Error writing image: {size.label} to {tmpfile}", str(tmpfile))

    def _stage(self, editor: ImageEditor, tmpfile: Path, size: TargetSize) -> Path:
        """Write the edited image to a staging file beside `tmpfile` and return its path."""
        staging = tmpfile.with_name(f".{tmpfile.name}.{uuid4().hex}.part")
        try:
            self._fs.ensure_dir(tmpfile.parent)
            editor.save(staging, image_format=format_for_path(tmpfile, default=editor.image.format or "PNG"))
        except (ImageEditorError, OSError) as exc:
            raise self._write_failed(staging, tmpfile, size, exc) from exc
        return staging

    def _publish(self, staging: Path, tmpfile: Path, size: TargetSize) -> None:
        """Move a staged file into place so `tmpfile` is only ever replaced whole."""
        try:
            self._fs.move(staging, tmpfile)
        except OSError as exc:
            raise self._write_failed(staging, tmpfile, size, exc) from exc

    def _commit(self, current: Rendition, rendition: Rendition, staging: Path, size: TargetSize) -> None:
        replaces_current = os.path.abspath(current.path) == os.path.abspath(rendition.path)
        shared_files = self._files_of_other_sizes(rendition.owner_id, rendition.size_name)

        try:
            self.save(rendition)
        except MetadataStorageError:
            self._fs.delete(staging)
            raise

        try:
            self._publish(staging, Path(rendition.path), size)
        except ThumbnailOperationError:
            self.save(current)
            raise

        preview_dir = self._preview_dir_for(rendition.owner_id, size)
        if self._fs.remove_tree(preview_dir):
            logger.debug("Removed previews in %s", preview_dir)

        if replaces_current:
            logger.info("Committed %s rendition of %s in place", rendition.size_name, rendition.owner_id)
            return

        if current.file in shared_files:
            logger.info("Keeping %s, still used by %s", current.path, shared_files[current.file])
        elif not self._fs.delete(current.path):
            logger.warning("Superseded rendition %s was already gone", current.path)

        logger.info(
            "Committed %s rendition of %s: %s replaces %s",
            rendition.size_name,
            rendition.owner_id,
            rendition.file,
            current.file,
        )


_default_manager: ThumbnailManager | None = None


def get_thumbnail_manager() -> ThumbnailManager:
    """
    Return the process-wide thumbnail manager.

    Built lazily from environment variables so `.env` loading in the app entry
    point happens first; tests can override it as a FastAPI dependency.
    """
    global _default_manager
    if _default_manager is None:
        upload_dir = Path(os.getenv("THUMBNAIL_UPLOAD_DIR", "storage/uploads"))
        store = MetadataStore(
            metadata_dir=Path(os.getenv("THUMBNAIL_METADATA_DIR", "storage/metadata")),
            upload_dir=upload_dir,
            upload_url=os.getenv("THUMBNAIL_UPLOAD_URL", "/uploads"),
        )
        _default_manager = ThumbnailManager(
            store=store,
            registry=SizeRegistry.from_env(),
            preview_dir=os.getenv("THUMBNAIL_PREVIEW_DIR", "ptetmp"),
        )
    return _default_manager
