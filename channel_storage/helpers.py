"""Stateless helper functions shared by the storage backends."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

DIRECTORY_MARKER_SUFFIX = "/"


def filename_encode(value: str) -> str:
    """Return a stable hex digest usable as a file name for ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def credential_cache_path(url: str, cache_dir: str | os.PathLike[str]) -> Path:
    """Content-addressed cache location for credentials fetched from ``url``."""
    return Path(cache_dir) / f"{filename_encode(url)}.json"


def file_exists(path: str | os.PathLike[str]) -> bool:
    """Check that ``path`` exists and is a regular file."""
    return Path(path).is_file()


def is_directory_marker(name: str) -> bool:
    """Object names ending in a separator are placeholder 'directories'."""
    return name.endswith(DIRECTORY_MARKER_SUFFIX)


def summarize_payload(data: bytes | bytearray | None) -> str:
    """Short description of a binary payload for log lines."""
    if data is None:
        return "<none>"
    return f"<{len(data)} bytes>"
