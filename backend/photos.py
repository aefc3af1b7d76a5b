"""Binary storage for harvest photos. Only the returned URL is persisted."""
import logging
import os
import re
from pathlib import Path
from typing import Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
MAX_PHOTO_BYTES = 5 * 1024 * 1024
ALLOWED_CONTENT_TYPE = re.compile(r"^image/(jpeg|jpg|png|gif|webp|heic)$", re.IGNORECASE)


class PhotoStorage(Protocol):
    def save(self, harvest_id: str, filename: str | None, content: bytes) -> str:
        """Store the binary and return its public URL."""
        ...

    def delete(self, url: str) -> None:
        """Remove a binary previously returned by save()."""
        ...


def file_extension(filename: str | None) -> str:
    match = re.search(r"\.[^.]+$", filename or "")
    return match.group(0) if match else ".jpg"


class LocalPhotoStorage:
    """Writes uploads below ``base_dir/harvests/<harvest_id>/``."""

    def __init__(self, base_dir: str | Path = UPLOAD_DIR, url_prefix: str = "/uploads"):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, harvest_id: str, filename: str | None, content: bytes) -> str:
        target_dir = self.base_dir / "harvests" / harvest_id
        target_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{uuid4()}{file_extension(filename)}"
        (target_dir / stored_name).write_bytes(content)
        logger.info(f"Stored photo {stored_name} for harvest {harvest_id} ({len(content)} bytes)")
        return f"{self.url_prefix}/harvests/{harvest_id}/{stored_name}"

    def delete(self, url: str) -> None:
        if not url.startswith(self.url_prefix + "/"):
            return
        path = self.base_dir / url[len(self.url_prefix) + 1:]
        path.unlink(missing_ok=True)
        logger.info(f"Removed photo {path.name}")
