"""Local Filesystem Storage Backend.

Implements the StorageBackend interface using the local filesystem. Object
keys map to paths below the root directory. Used for local development and
for exercising callers without a GCS bucket.
"""

from __future__ import annotations

import io
import mimetypes
import shutil
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import BinaryIO

from ..exceptions import InvalidArgumentError
from ..exceptions import NotFoundError
from ..helpers import is_directory_marker
from ..models import ObjectInfo
from .base import StorageBackend


class LocalStorageBackend(StorageBackend):
    """Storage backend using the local filesystem.

    Args:
        root_dir: Directory acting as the bucket; created if missing.
    """

    def __init__(self, root_dir: str | Path):
        self._root = Path(root_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        return "local"

    @property
    def root_path(self) -> str:
        return str(self._root)

    def _full_path(self, key: str) -> Path:
        """Convert an object key to an absolute path inside the root."""
        if not key or is_directory_marker(key):
            raise InvalidArgumentError("object key must be a non-empty object name", field="key", value=key)
        full_path = (self._root / key).resolve()
        if not full_path.is_relative_to(self._root):
            raise InvalidArgumentError("object key escapes the storage root", field="key", value=key)
        return full_path

    def _existing(self, key: str) -> Path:
        full_path = self._full_path(key)
        if not full_path.is_file():
            raise NotFoundError(key, bucket=self.root_path)
        return full_path

    # === Object Operations ===

    def save(self, key: str, data: bytes) -> str:
        full_path = self._full_path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)
        return key

    def save_stream(self, key: str, reader: BinaryIO) -> str:
        full_path = self._full_path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        with open(full_path, "wb") as out:
            shutil.copyfileobj(reader, out)
        return key

    def get(self, key: str) -> bytes:
        return self._existing(key).read_bytes()

    def open(self, key: str) -> BinaryIO:
        return io.BytesIO(self.get(key))

    def delete(self, key: str) -> None:
        self._existing(key).unlink()

    def exists(self, key: str) -> bool:
        return self._full_path(key).is_file()

    def stat(self, key: str) -> ObjectInfo:
        full_path = self._existing(key)
        stat = full_path.stat()
        return ObjectInfo(
            name=key,
            bucket=self.root_path,
            size=stat.st_size,
            content_type=mimetypes.guess_type(key)[0] or "application/octet-stream",
            updated=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def list(self, prefix: str = "") -> list[str]:
        keys = []
        for item in self._root.rglob("*"):
            if not item.is_file():
                continue
            key = item.relative_to(self._root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)
