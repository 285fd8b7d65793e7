from __future__ import annotations

import logging
import os
import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from app.config import settings
from app.services.errors import FormValidationError, StorageError, UploadInProgressError


logger = logging.getLogger(__name__)

PHOTO_BUCKET = "photos"
ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
_REFERENCE_RE = re.compile(rf"^{PHOTO_BUCKET}/(\d+)\.(jpg|png|webp)$")


class UploadTracker:
    """Per-user registry of uploads that are still being written."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[int] = set()

    def is_active(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._active

    @contextmanager
    def track(self, user_id: int) -> Iterator[None]:
        with self._lock:
            if user_id in self._active:
                raise UploadInProgressError()
            self._active.add(user_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(user_id)


uploads = UploadTracker()


def parse_reference(reference: str) -> tuple[int, str] | None:
    match = _REFERENCE_RE.match(reference or "")
    if not match:
        return None
    return int(match.group(1)), match.group(2)


class PhotoStorage:
    """Filesystem bucket for passport photos, keyed by user id.

    A new upload replaces an older photo of the same type. Photos of other
    types stay until a Step-2 save attaches the new reference.
    References look like ``photos/42.jpg`` and never contain caller input.
    """

    def __init__(self, root: str | os.PathLike[str], max_bytes: int) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes

    @property
    def bucket_dir(self) -> Path:
        return self.root / PHOTO_BUCKET

    def path_for(self, reference: str) -> Path:
        if parse_reference(reference) is None:
            raise FormValidationError({"photo_reference": "Invalid photo reference"})
        return self.root / reference

    def exists(self, reference: str) -> bool:
        return parse_reference(reference) is not None and (self.root / reference).is_file()

    def store(self, user_id: int, content_type: str | None, data: bytes) -> str:
        ext = ALLOWED_CONTENT_TYPES.get((content_type or "").lower())
        if ext is None:
            raise FormValidationError({"photo": "Photo must be a JPEG, PNG or WebP image"})
        if not data:
            raise FormValidationError({"photo": "Photo file is empty"})
        if len(data) > self.max_bytes:
            raise FormValidationError({"photo": f"Photo must be at most {self.max_bytes} bytes"})

        reference = f"{PHOTO_BUCKET}/{user_id}.{ext}"
        target = self.root / reference
        tmp = target.with_suffix(target.suffix + ".part")
        try:
            self.bucket_dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            logger.error("photo_storage.store failed user_id=%s: %s", user_id, exc)
            raise StorageError("Photo storage is unavailable") from exc

        logger.info("photo.stored user_id=%s reference=%s bytes=%s", user_id, reference, len(data))
        return reference

    def discard_others(self, user_id: int, keep_reference: str) -> None:
        """Remove the user's photos of other types than ``keep_reference``."""

        for ext in ALLOWED_CONTENT_TYPES.values():
            reference = f"{PHOTO_BUCKET}/{user_id}.{ext}"
            if reference == keep_reference:
                continue
            try:
                (self.root / reference).unlink(missing_ok=True)
            except OSError as exc:
                # The profile no longer points here; a leftover file is harmless.
                logger.warning("photo_storage.discard failed reference=%s: %s", reference, exc)


def get_photo_storage() -> PhotoStorage:
    return PhotoStorage(settings.storage_dir, settings.photo_max_bytes)
