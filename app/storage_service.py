"""
Audit copies of analyzed images.

Stores the raw photo under UPLOAD_DIR so it can be served back (as the
card hero image) via the /uploads static mount. Callers treat every
failure here as non-fatal.
"""
import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Optional

from app.errors import BotError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")


class StorageError(BotError):
    """Raised when an image cannot be stored."""
    pass


class AuditStore:
    def __init__(self, upload_dir: str, public_base_url: Optional[str] = None):
        self.upload_dir = Path(upload_dir)
        self.public_base_url = public_base_url

    def filename_for(self, user_id: Optional[str], extension: str = "jpg") -> str:
        """One file per user; anonymous uploads are timestamped."""
        stem = _UNSAFE.sub("_", user_id) if user_id else f"anonymous_{int(time.time() * 1000)}"
        return f"{stem}.{extension}"

    def _write(self, path: Path, image: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(image)

    async def upload(self, image: bytes, user_id: Optional[str], extension: str = "jpg") -> Optional[str]:
        """
        Save image and return its public URL (None without PUBLIC_BASE_URL).

        Raises:
            StorageError: if the file cannot be written
        """
        filename = self.filename_for(user_id, extension)
        path = self.upload_dir / filename
        try:
            await asyncio.to_thread(self._write, path, image)
        except OSError as e:
            raise StorageError(f"Could not store {filename}: {e}") from e

        logger.info("[AUDIT] Image stored: %s", path)
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/uploads/{filename}"
