"""Durable image storage for uploads and generated images.

Images live under ``<data_dir>/media/<user_id>/`` and are referenced by URL
(``<media_base_url>/<user_id>/<file>``). ``load`` also accepts ``data:`` URLs
and remote http(s) URLs so existing references keep working.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
import time
import uuid
from pathlib import Path

import httpx

from contentforge.config import get_settings
from contentforge.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)
_EXTENSIONS = {"image/jpeg": ".jpg", "image/png": ".png", "image/webp": ".webp", "image/gif": ".gif"}


class MediaStorage:
    """Local-disk media store addressed by public URL."""

    def __init__(
        self,
        root: Path,
        base_url: str = "/media",
        max_upload_bytes: int | None = None,
        timeout: float = 30.0,
    ):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")
        self._max_upload_bytes = max_upload_bytes
        self._timeout = timeout

    @property
    def root(self) -> Path:
        return self._root

    def save(self, user_id: str, data: bytes, mime_type: str) -> str:
        """Store bytes for ``user_id`` and return the reference URL."""
        ext = _EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ".bin"
        safe_user = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id)
        name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{ext}"
        folder = self._root / safe_user
        folder.mkdir(parents=True, exist_ok=True)
        (folder / name).write_bytes(data)
        return f"{self._base_url}/{safe_user}/{name}"

    def save_upload(self, user_id: str, data: bytes, mime_type: str | None, filename: str = "") -> str:
        """Validate an uploaded image and store it."""
        mime = mime_type or mimetypes.guess_type(filename)[0] or ""
        if not mime.startswith("image/"):
            raise ValidationError(f"Unsupported upload type for {filename or 'file'}: {mime or 'unknown'}")
        if not data:
            raise ValidationError(f"Empty upload: {filename or 'file'}")
        if self._max_upload_bytes is not None and len(data) > self._max_upload_bytes:
            raise ValidationError(
                f"Upload {filename or 'file'} is {len(data)} bytes; limit is {self._max_upload_bytes}"
            )
        return self.save(user_id, data, mime)

    def path_for(self, ref: str) -> Path | None:
        """Local path for a stored reference, or None for anything else."""
        prefix = f"{self._base_url}/"
        if not ref.startswith(prefix):
            return None
        path = (self._root / ref[len(prefix):]).resolve()
        try:
            path.relative_to(self._root.resolve())
        except ValueError:
            return None
        return path

    def load(self, ref: str) -> tuple[bytes, str]:
        """Return ``(bytes, mime_type)`` for a stored, data: or http(s) reference."""
        m = _DATA_URL_RE.match(ref)
        if m:
            mime = m.group("mime") or "application/octet-stream"
            try:
                data = base64.b64decode(m.group("data")) if m.group("b64") else m.group("data").encode()
            except (binascii.Error, ValueError) as e:
                raise ProviderError(f"Invalid data URL for image: {e}") from e
            return data, mime

        path = self.path_for(ref)
        if path is not None:
            if not path.exists():
                raise ProviderError(f"Stored image not found: {ref}")
            mime = mimetypes.guess_type(path.name)[0] or "image/jpeg"
            return path.read_bytes(), mime

        if ref.lower().startswith(("http://", "https://")):
            try:
                with httpx.Client(follow_redirects=True, timeout=self._timeout) as client:
                    response = client.get(ref)
                    response.raise_for_status()
            except httpx.HTTPError as e:
                raise ProviderError(f"Failed to fetch image from URL: {ref} ({e})") from e
            mime = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
            return response.content, mime or "image/jpeg"

        raise ProviderError(f"Unsupported image reference: {ref}")


_storage: MediaStorage | None = None


def get_media_storage() -> MediaStorage:
    global _storage
    if _storage is None:
        settings = get_settings()
        _storage = MediaStorage(
            settings.media_dir,
            base_url=settings.cf_media_base_url,
            max_upload_bytes=settings.max_upload_bytes,
        )
    return _storage
