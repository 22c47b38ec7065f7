"""
Binary object storage for user uploads (profile pictures).

LocalObjectStore writes under a directory on disk and serves the files
through the `/uploads/<path>` route; FirebaseObjectStore in
firebase_backend.py writes to a Cloud Storage bucket instead.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

# Magic byte signatures for file header validation
_MAGIC_BYTES = {
    "image/png": (b"\x89PNG",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/webp": (b"RIFF",),
}

_EXTENSIONS = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}

MAX_IMAGE_BYTES = 5 * 1024 * 1024


def detect_image_type(data: bytes) -> str | None:
    """Content type from the file header, or None if not a supported image."""
    for content_type, signatures in _MAGIC_BYTES.items():
        for signature in signatures:
            if data.startswith(signature):
                if content_type == "image/webp" and data[8:12] != b"WEBP":
                    continue
                return content_type
    return None


def validate_image(filename: str, data: bytes) -> str:
    """Check extension and header agree; return the content type."""
    ext = PurePosixPath(filename or "").suffix.lower()
    claimed = _EXTENSIONS.get(ext)
    if claimed is None:
        raise ValidationError("Supported formats: PNG, JPG, WEBP")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError("Image is larger than 5 MB")
    if detect_image_type(data) != claimed:
        raise ValidationError("File content does not match its extension.")
    return claimed


def profile_picture_path(uid: str, filename: str) -> str:
    return f"profile-pictures/{uid}/{PurePosixPath(filename).name}"


class LocalObjectStore:
    backend = "local"

    def __init__(self, root: str | Path, base_url: str = "/uploads") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValidationError("Invalid object path")
        return target

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at path and return their public URL."""
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StoreError(f"Could not store {path}: {e}") from e
        logger.info("Stored %s (%s, %d bytes)", path, content_type, len(data))
        return f"{self.base_url}/{path}"

    def open(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        return target
