"""
auth/avatars.py -- Profile image placeholder URLs and on-disk avatar files.

Uploads:
  Only JPEG, PNG and GIF are accepted, judged by the declared content type.
  The body is streamed to disk in chunks; as soon as the running total passes
  max_bytes the partial file is deleted and a ValidationError is raised, so an
  oversized upload never reaches the credential record.

  Files are named <user_id>-<unix millis><ext> inside root_dir and exposed to
  clients as <url_prefix>/<file>. asgi.py mounts root_dir at url_prefix.

Removal:
  remove() only deletes files it could have written: references under
  url_prefix that resolve inside root_dir. Placeholder URLs and anything else
  are left alone.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote

from core.errors import ValidationError

if TYPE_CHECKING:
    from fastapi import UploadFile

logger = logging.getLogger("taskboard.auth.avatars")

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}

PLACEHOLDER_BASE = "https://ui-avatars.com/api/"
DEFAULT_URL_PREFIX = "/uploads/profiles"

_CHUNK_SIZE = 64 * 1024


def default_avatar_url(name: str) -> str:
    """Generated placeholder keyed by display name."""
    return f"{PLACEHOLDER_BASE}?name={quote(name, safe='')}&background=random"


def is_placeholder(ref: str | None) -> bool:
    return not ref or ref.startswith(PLACEHOLDER_BASE)


class AvatarStore:
    """Writes and removes profile image files under one directory."""

    def __init__(self, root_dir: Path | str, max_bytes: int, url_prefix: str = DEFAULT_URL_PREFIX) -> None:
        self.root_dir = Path(root_dir)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")
        self.root_dir.mkdir(parents=True, exist_ok=True)

    async def save(self, upload: UploadFile, user_id: int) -> str:
        """Stream the upload to disk and return its public reference.

        Raises ValidationError (field "profileImage") for a disallowed type or
        an upload larger than max_bytes.
        """
        content_type = (upload.content_type or "").lower()
        ext = ALLOWED_CONTENT_TYPES.get(content_type)
        if ext is None:
            raise ValidationError.single("profileImage", "Invalid file type. Only JPEG, PNG and GIF are allowed.")

        filename = f"{user_id}-{int(time.time() * 1000)}{ext}"
        dest = self.root_dir / filename
        written = 0
        with dest.open("wb") as out:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    break
                out.write(chunk)
        if written > self.max_bytes:
            dest.unlink(missing_ok=True)
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ValidationError.single("profileImage", f"File too large. Maximum size is {limit_mb} MB.")

        logger.info("Stored profile image %s (%d bytes) for user id=%s", filename, written, user_id)
        return f"{self.url_prefix}/{filename}"

    def path_for(self, ref: str | None) -> Path | None:
        """Map a public reference back to a file inside root_dir, if it is one of ours."""
        if is_placeholder(ref) or not ref.startswith(self.url_prefix + "/"):
            return None
        candidate = (self.root_dir / ref[len(self.url_prefix) + 1 :]).resolve()
        if candidate.parent != self.root_dir.resolve():
            return None
        return candidate

    def remove(self, ref: str | None) -> bool:
        """Delete the file behind ref. Returns True if a file was removed."""
        path = self.path_for(ref)
        if path is None or not path.is_file():
            return False
        try:
            path.unlink()
        except OSError:
            logger.warning("Could not remove old profile image %s", path, exc_info=True)
            return False
        return True
