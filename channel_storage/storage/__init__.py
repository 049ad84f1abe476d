"""Storage Abstraction Layer for the channel storage gateway.

Provides a unified interface over per-channel object storage:
- GCS: one bucket per channel, built from the channel's service account
- Local: filesystem directory, for development
- Remote: the gateway, through ``channel_storage.remote_client``

Usage:
    from channel_storage.storage import BackendClientFactory, open_channel_storage

    factory = BackendClientFactory(cache_dir="/tmp")
    with open_channel_storage(config_map, "tenant1", factory) as storage:
        storage.save("a/b.txt", b"hello")
"""

from .base import AuthorizationBackend
from .base import StorageBackend
from .credentials import CredentialResolver
from .credentials import ServiceAccountKey
from .factory import BackendClientFactory
from .factory import open_channel_storage
from .gcs import GCSStorageBackend
from .local import LocalStorageBackend

__all__ = [
    "AuthorizationBackend",
    "BackendClientFactory",
    "CredentialResolver",
    "GCSStorageBackend",
    "LocalStorageBackend",
    "ServiceAccountKey",
    "StorageBackend",
    "open_channel_storage",
]
