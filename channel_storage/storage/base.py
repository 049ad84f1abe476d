"""Abstract Base Classes for Storage Backends.

Defines the two capability interfaces every backend is composed from:

- StorageBackend: object CRUD scoped to one bucket
- AuthorizationBackend: public-access detection, download URLs,
  access tokens and signed upload URLs
"""

from __future__ import annotations

import datetime
from abc import ABC
from abc import abstractmethod
from typing import BinaryIO

from ..exceptions import InvalidArgumentError
from ..models import AccessToken
from ..models import DownloadUrl

MAX_SIGNED_URL_TTL = datetime.timedelta(days=7)


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    All storage implementations (GCS, local filesystem, remote gateway) must
    implement this interface. Instances are short-lived: open one per
    operation or caller session and close it afterwards.
    """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return the backend type identifier (e.g., 'gcs', 'local', 'remote')."""
        pass

    @property
    @abstractmethod
    def root_path(self) -> str:
        """Return the root path/bucket for storage."""
        pass

    # === Object Operations ===

    @abstractmethod
    def save(self, key: str, data: bytes) -> str:
        """Write ``data`` at ``key``, overwriting any existing object.

        Returns:
            Path or name of the stored object.
        """
        pass

    @abstractmethod
    def save_stream(self, key: str, reader: BinaryIO) -> str:
        """Write the contents of ``reader`` at ``key``.

        Implementations stream the payload whenever the transport allows it.

        Returns:
            Path or name of the stored object.
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read the object at ``key``.

        Raises:
            NotFoundError: If the object does not exist.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the object at ``key``.

        Raises:
            NotFoundError: If the object does not exist.
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether an object exists.

        Returns False only for absent objects; every other failure raises.
        """
        pass

    @abstractmethod
    def list(self, prefix: str = "") -> list[str]:
        """List object keys starting with ``prefix``.

        Directory markers (keys ending in '/') are never returned.
        """
        pass

    # === Lifecycle ===

    def close(self) -> None:
        """Release network resources held by the backend."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class AuthorizationBackend(ABC):
    """Abstract base class for the authorization capabilities of a backend."""

    @abstractmethod
    def get_download_url(self, key: str) -> DownloadUrl:
        """Return the canonical URL of ``key`` and, for private buckets, a token."""
        pass

    @abstractmethod
    def get_access_token(self) -> AccessToken:
        """Issue a fresh read-only bearer token from service-account key material."""
        pass

    @abstractmethod
    def signed_url(
        self, key: str, content_type: str, ttl: datetime.timedelta | int | float
    ) -> str:
        """Return a time-boxed PUT URL bound to ``content_type``."""
        pass


def normalize_ttl(ttl: datetime.timedelta | int | float) -> datetime.timedelta:
    """Coerce a TTL to a timedelta and check it is within signing limits."""
    if not isinstance(ttl, datetime.timedelta):
        ttl = datetime.timedelta(seconds=ttl)
    if ttl <= datetime.timedelta(0) or ttl > MAX_SIGNED_URL_TTL:
        raise InvalidArgumentError(
            "ttl must be positive and at most 7 days",
            field="ttl",
            value=ttl.total_seconds(),
        )
    return ttl
