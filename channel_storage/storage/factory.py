"""Storage Backend Factory.

Turns a channel's configuration into a ready GCS backend:

1. Resolve the channel's credentials (local key file, or URL fetched once
   into the credentials cache)
2. Build a google-cloud-storage client bound to those credentials
3. Scope it to the channel's bucket

Backends are built per request and closed afterwards; the factory itself
only holds the credential resolver and timeouts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from ..exceptions import BackendUnavailableError
from .credentials import CredentialResolver
from .credentials import ServiceAccountKey
from .gcs import GCSStorageBackend

if TYPE_CHECKING:
    from ..config.channels import ChannelConfig
    from ..config.channels import ChannelConfigMap
    from ..config.settings import Settings

logger = logging.getLogger(__name__)

ClientBuilder = Callable[[ServiceAccountKey], object]


class BackendClientFactory:
    """Builds per-channel storage backends.

    Args:
        resolver: Credential resolver; one is created from ``cache_dir`` when omitted.
        cache_dir: Directory for credentials fetched from URLs.
        backend_timeout: Deadline in seconds for every backend call.
        fetch_timeout: Timeout in seconds for credential downloads.
        client_builder: Optional ``key -> storage client`` callable,
            used instead of constructing ``google.cloud.storage.Client``.
    """

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        cache_dir: str | None = None,
        backend_timeout: float = 60.0,
        fetch_timeout: float = 30.0,
        client_builder: ClientBuilder | None = None,
    ):
        if resolver is None:
            if cache_dir is None:
                raise ValueError("either resolver or cache_dir is required")
            resolver = CredentialResolver(cache_dir, fetch_timeout=fetch_timeout)
        self.resolver = resolver
        self.backend_timeout = backend_timeout
        self._client_builder = client_builder

    @classmethod
    def from_settings(cls, settings: Settings, client_builder: ClientBuilder | None = None) -> BackendClientFactory:
        return cls(
            cache_dir=settings.credentials_cache_dir,
            backend_timeout=settings.backend_timeout,
            fetch_timeout=settings.credentials_fetch_timeout,
            client_builder=client_builder,
        )

    def build(self, config: ChannelConfig) -> GCSStorageBackend:
        """Build a backend for ``config``.

        Raises:
            CredentialError: If the key material cannot be obtained or parsed.
            BackendUnavailableError: If the storage client cannot be constructed.
        """
        key = self.resolver.resolve(config)
        client = None
        if self._client_builder is not None:
            try:
                client = self._client_builder(key)
            except Exception as e:
                raise BackendUnavailableError(
                    f"storage client for {config.bucket}: {e}", details={"bucket": config.bucket}
                ) from e
        logger.debug(f"Building GCS backend for bucket {config.bucket} as {key.client_email}")
        return GCSStorageBackend(config.bucket, key, client=client, timeout=self.backend_timeout)

    @contextmanager
    def open(self, config: ChannelConfig) -> Iterator[GCSStorageBackend]:
        """Build a backend and close it when the block exits."""
        backend = self.build(config)
        try:
            yield backend
        finally:
            backend.close()


@contextmanager
def open_channel_storage(
    config_map: ChannelConfigMap, channel: str | None, factory: BackendClientFactory
) -> Iterator[GCSStorageBackend]:
    """Resolve ``channel`` and open its backend in one step.

    Raises:
        InvalidArgumentError: If the channel is empty or not configured.
    """
    config = config_map.resolve(channel)
    with factory.open(config) as backend:
        yield backend
