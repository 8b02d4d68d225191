"""
services/media_storage.py — Local storage for profile images.

Uploaded avatars and cover images are written under MEDIA_ROOT with a random
file name and addressed by a public URL under MEDIA_URL_PREFIX. Services hold
only the URL; the storage maps it back to a path when the image is replaced.
"""

from __future__ import annotations

import logging
import secrets
from pathlib import Path

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from backend.app.errors import AppError, ErrorCode


logger = logging.getLogger(__name__)


class LocalMediaStorage:

    def __init__(
            self,
            root: str | Path,
            url_prefix: str,
            allowed_extensions: frozenset[str] | set[str],
    ) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.allowed_extensions = {ext.lower() for ext in allowed_extensions}

    @classmethod
    def from_mapping(cls, config) -> "LocalMediaStorage":
        return cls(
            root=config["MEDIA_ROOT"],
            url_prefix=config["MEDIA_URL_PREFIX"],
            allowed_extensions=config["ALLOWED_IMAGE_EXTENSIONS"],
        )

    def _extension(self, file: FileStorage, field: str) -> str:
        filename = secure_filename(file.filename or "")
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in self.allowed_extensions:
            allowed = ", ".join(sorted(self.allowed_extensions))
            raise AppError(
                ErrorCode.INVALID_FILE,
                f"Unsupported file type. Allowed: {allowed}.",
                400,
                field=field,
            )
        return ext

    def save(self, file: FileStorage | None, field: str) -> str:
        """
        Stores `file` and returns its public URL.

        Raises:
          AppError(INVALID_FILE, 400)        — no file, empty name, bad extension
          AppError(MEDIA_UPLOAD_FAILED, 500) — the file could not be written
        """
        if file is None or not file.filename:
            raise AppError(
                ErrorCode.INVALID_FILE,
                f"The {field} file is required.",
                400,
                field=field,
            )

        ext = self._extension(file, field)
        name = f"{secrets.token_hex(16)}.{ext}"

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            file.save(self.root / name)
        except OSError as exc:
            logger.error("Failed to store %s upload: %s", field, exc)
            raise AppError(
                ErrorCode.MEDIA_UPLOAD_FAILED,
                "Failed to upload the file, please try again.",
                500,
            ) from exc

        return f"{self.url_prefix}/{name}"

    def path_for(self, url: str | None) -> Path | None:
        """Maps a URL produced by save() back to its file, or None if foreign."""
        if not url or not url.startswith(self.url_prefix + "/"):
            return None
        name = url[len(self.url_prefix) + 1:]
        if not name or name != secure_filename(name):
            return None
        return self.root / name

    def delete(self, url: str | None) -> None:
        """Removes a previously stored file. Unknown URLs are ignored."""
        path = self.path_for(url)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            # The new image is already saved; a leftover file is not fatal.
            logger.warning("Could not delete replaced media %s: %s", path, exc)
