"""Upload and transform orchestration for stored images."""

import logging
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePath
from typing import Protocol

from pixel_forge.adapters.local_file_storage import FileStorage
from pixel_forge.domain.images import ProcessedImage, StoredImage
from pixel_forge.errors import StorageError, UploadValidationError
from pixel_forge.services.cleanup import FileCatalog
from pixel_forge.services.registry import SessionRegistry, utc_now
from pixel_forge.services.transforms import ImageProcessor, normalize_transformations

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ImageRecordRepository(Protocol):
    """Persistence interface for uploaded image bookkeeping."""

    def create_record(self, image: StoredImage) -> None:
        """Persist a record for a newly uploaded image."""

    def update_transformations(
        self, filename: str, transformations: dict[str, object]
    ) -> None:
        """Persist the last transformations applied to an image."""


@dataclass
class ImageService(FileCatalog):
    """Stores uploads on disk and serves transformed renditions of them."""

    storage: FileStorage
    registry: SessionRegistry
    processor: ImageProcessor
    base_url: str
    record_repository: ImageRecordRepository | None = None
    clock: Callable[[], datetime] = utc_now
    _images: dict[str, StoredImage] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def store_upload(
        self, session_id: str | None, original_name: str | None, content: bytes
    ) -> StoredImage:
        """Write an uploaded file to disk and register it with its session."""
        if not content:
            raise UploadValidationError("File buffer is empty")
        if not session_id or not session_id.strip():
            raise UploadValidationError("Session ID is required")
        session_id = session_id.strip()

        uploaded_at = self.clock()
        millis = int(uploaded_at.timestamp() * 1000)
        filename = f"{millis}_{sanitize_filename(original_name)}"
        try:
            path = self.storage.write_bytes(filename, content)
        except OSError as exc:
            logger.exception("Failed to write upload", extra={"filename": filename})
            raise StorageError(filename, "Failed to store upload") from exc

        image = StoredImage(
            filename=filename,
            path=path,
            session_id=session_id,
            uploaded_at=uploaded_at,
            url=f"{self.base_url.rstrip('/')}/uploads/{filename}",
        )
        with self._lock:
            self._images[filename] = image
        self.registry.register_file(session_id, path)
        if self.record_repository is not None:
            try:
                self.record_repository.create_record(image)
            except Exception:
                logger.exception(
                    "Failed to create image record", extra={"filename": filename}
                )
        return image

    def get_image(self, filename: str) -> StoredImage | None:
        """Return metadata for an uploaded file still present on disk."""
        with self._lock:
            image = self._images.get(filename)
        if image is None:
            return None
        if not self.storage.exists(image.path):
            with self._lock:
                self._images.pop(filename, None)
            return None
        return image

    def transform_image(
        self, filename: str, transformations: Mapping[str, object] | None
    ) -> ProcessedImage | None:
        """Apply transformations to a stored original.

        The original is re-read from disk on every call. Returns None when the
        file is unknown.
        """
        image = self.get_image(filename)
        if image is None:
            return None
        try:
            source = self.storage.read_bytes(image.path)
        except OSError as exc:
            raise StorageError(image.path, "Failed to read stored image") from exc

        width, height = self.processor.dimensions(source)
        spec = normalize_transformations(transformations, width, height)
        result = self.processor.apply(source, spec)

        if self.record_repository is not None:
            try:
                self.record_repository.update_transformations(filename, spec.to_dict())
            except Exception:
                logger.exception(
                    "Failed to record transformations", extra={"filename": filename}
                )
        return result

    def cleanup_session(self, session_id: str) -> int:
        """Delete a session's files and forget their metadata."""
        deleted = self.registry.cleanup_session(session_id)
        self.forget_session(session_id)
        return deleted

    def forget_session(self, session_id: str) -> None:
        """Drop metadata for files uploaded under a session."""
        with self._lock:
            stale = [
                name
                for name, image in self._images.items()
                if image.session_id == session_id
            ]
            for name in stale:
                del self._images[name]

    def forget_path(self, path: Path) -> None:
        """Drop metadata for a file the orphan sweep removed."""
        with self._lock:
            image = self._images.get(path.name)
            if image is not None and image.path == path:
                del self._images[path.name]

    def tracked_images(self) -> int:
        """Return how many uploads currently have metadata in memory."""
        with self._lock:
            return len(self._images)


def sanitize_filename(original_name: str | None) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    basename = PurePath((original_name or "").replace("\\", "/")).name
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", basename).lstrip(".")
    return cleaned or "upload"
