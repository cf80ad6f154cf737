"""
PDF object storage on the local filesystem.

Files live under <root>/<user_id>/<key> and are addressed by public URLs of the
form <base_url>/files/<user_id>/<key>; the URL is what gets stored on the
invoice row.
"""
from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

FILES_PREFIX = "/files/"


class StorageError(Exception):
    pass


class PdfStorage:
    def __init__(self, root_dir: str, base_url: str):
        self.root = Path(root_dir).resolve()
        self.base_url = (base_url or "").rstrip("/")

    def _path(self, relative: str) -> Path:
        path = (self.root / relative).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Path escapes storage root: {relative!r}")
        return path

    def url_for(self, user_id: int, key: str) -> str:
        return f"{self.base_url}{FILES_PREFIX}{int(user_id)}/{key}"

    def relative_from_url(self, url: str) -> str:
        idx = (url or "").find(FILES_PREFIX)
        if idx < 0:
            raise StorageError(f"Not a storage URL: {url!r}")
        return url[idx + len(FILES_PREFIX):]

    def upload(self, user_id: int, key: str, content: bytes) -> str:
        path = self._path(f"{int(user_id)}/{key}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            logger.exception("Upload failed for %s", path)
            raise StorageError(f"Could not store {key}") from exc
        return self.url_for(user_id, key)

    def local_path(self, url: str) -> Path:
        return self._path(self.relative_from_url(url))

    def exists(self, url: str) -> bool:
        try:
            return self.local_path(url).is_file()
        except StorageError:
            return False

    def read(self, url: str) -> bytes:
        path = self.local_path(url)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Could not read {url}") from exc

    def remove(self, url: str) -> None:
        path = self.local_path(url)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not remove {url}") from exc
