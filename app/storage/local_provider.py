"""
Local filesystem storage provider for job attachments.
"""
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

import structlog
from slugify import slugify

from ..config import settings
from .provider import StorageProvider


logger = structlog.get_logger(__name__)


def attachment_key(job_id: uuid.UUID, filename: str) -> str:
    """Key for a new attachment: ``jobs/<job>/<uuid>_<slugified name><ext>``."""
    stem, ext = os.path.splitext(filename or "")
    safe_stem = slugify(stem, lowercase=True, max_length=80) or "file"
    safe_ext = slugify(ext.lstrip("."), lowercase=True, max_length=10)
    suffix = f".{safe_ext}" if safe_ext else ""
    return f"jobs/{job_id}/{uuid.uuid4().hex}_{safe_stem}{suffix}"


class LocalStorageProvider(StorageProvider):
    """Stores files under ``base_dir`` (defaults to ``UPLOAD_DIR``)."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir or settings.upload_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        # Remove leading slash and sanitize
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / clean_key

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def copy_in(self, src_stream: BinaryIO, key: str) -> int:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(src_stream, f)
        return path.stat().st_size

    def local_path(self, key: str) -> Path:
        return self._get_path(key)

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info("attachment_file_missing", key=key)


def get_storage() -> StorageProvider:
    return LocalStorageProvider()
