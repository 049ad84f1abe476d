"""Google Cloud Storage Backend.

Implements StorageBackend and AuthorizationBackend on top of
google-cloud-storage for a single channel bucket. One instance is built per
request (or short caller session) from the channel's service-account key and
closed afterwards; it holds no state across requests.
"""

from __future__ import annotations

import datetime
import io
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO

from google.auth import exceptions as gauth_exceptions
from google.auth.transport import requests as google_requests
from google.cloud import storage

from ..exceptions import AuthError
from ..exceptions import BackendUnavailableError
from ..exceptions import ChannelStorageError
from ..exceptions import CredentialError
from ..exceptions import InvalidArgumentError
from ..exceptions import NotFoundError
from ..exceptions import classify_backend_error
from ..helpers import is_directory_marker
from ..models import AccessToken
from ..models import DownloadUrl
from ..models import ObjectInfo
from .base import AuthorizationBackend
from .base import StorageBackend
from .base import normalize_ttl
from .credentials import SCOPE_FULL_CONTROL
from .credentials import SCOPE_READ_ONLY
from .credentials import ServiceAccountKey

logger = logging.getLogger(__name__)

ALL_USERS = "allUsers"
PUBLIC_READ_ROLES = frozenset({"roles/storage.legacyObjectReader", "roles/storage.objectViewer"})
IAM_POLICY_VERSION = 3


class GCSStorageBackend(StorageBackend, AuthorizationBackend):
    """Storage backend using Google Cloud Storage.

    Args:
        bucket_name: Bucket every operation is scoped to.
        key: Parsed service-account key of the channel.
        client: Pre-built storage client; built from ``key`` when omitted.
        timeout: Deadline in seconds applied to every backend call.
        auth_request: google-auth transport used for token grants.
    """

    def __init__(
        self,
        bucket_name: str,
        key: ServiceAccountKey,
        client=None,
        timeout: float = 60.0,
        auth_request=None,
    ):
        if not bucket_name:
            raise InvalidArgumentError("GCS bucket name required", field="bucket")
        self._bucket_name = bucket_name
        self._key = key
        self._timeout = timeout
        self._auth_request = auth_request
        self._credentials = key.credentials([SCOPE_FULL_CONTROL])

        if client is None:
            try:
                client = storage.Client(project=key.project_id, credentials=self._credentials)
            except Exception as e:
                raise BackendUnavailableError(
                    f"storage.Client: {e}", details={"bucket": bucket_name}
                ) from e
        self._client = client
        self._bucket = self._client.bucket(bucket_name)

    @property
    def backend_type(self) -> str:
        return "gcs"

    @property
    def root_path(self) -> str:
        return f"gs://{self._bucket_name}"

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @contextmanager
    def _backend_call(self, operation: str, key: str | None = None) -> Iterator[None]:
        """Classify any backend failure raised inside the block."""
        try:
            yield
        except ChannelStorageError:
            raise
        except Exception as e:
            error = classify_backend_error(e, key=key, bucket=self._bucket_name, operation=operation)
            if not isinstance(error, NotFoundError):
                logger.warning(
                    f"GCS {operation} failed on {self._bucket_name}/{key or ''}: "
                    f"{type(e).__name__}: {e}"
                )
            raise error from e

    def _require_key(self, key: str) -> None:
        if not key or is_directory_marker(key):
            raise InvalidArgumentError("object key must be a non-empty object name", field="key", value=key)

    # === Object Operations ===

    def save(self, key: str, data: bytes) -> str:
        self._require_key(key)
        blob = self._bucket.blob(key)
        with self._backend_call("save", key):
            blob.upload_from_string(data, timeout=self._timeout)
        logger.debug(f"Saved {len(data)} bytes to gs://{self._bucket_name}/{key}")
        return blob.name

    def save_stream(self, key: str, reader: BinaryIO) -> str:
        self._require_key(key)
        blob = self._bucket.blob(key)
        with self._backend_call("save_stream", key):
            blob.upload_from_file(reader, timeout=self._timeout)
        return blob.name

    def get(self, key: str) -> bytes:
        self._require_key(key)
        with self._backend_call("get", key):
            return self._bucket.blob(key).download_as_bytes(timeout=self._timeout)

    def open(self, key: str) -> BinaryIO:
        """Read the object at ``key`` into an in-memory file object."""
        return io.BytesIO(self.get(key))

    def delete(self, key: str) -> None:
        self._require_key(key)
        with self._backend_call("delete", key):
            self._bucket.blob(key).delete(timeout=self._timeout)

    def exists(self, key: str) -> bool:
        self._require_key(key)
        with self._backend_call("exists", key):
            return self._bucket.blob(key).exists(timeout=self._timeout)

    def stat(self, key: str) -> ObjectInfo:
        """Return object metadata without downloading content."""
        self._require_key(key)
        with self._backend_call("stat", key):
            blob = self._bucket.get_blob(key, timeout=self._timeout)
        if blob is None:
            raise NotFoundError(key, bucket=self._bucket_name)
        return ObjectInfo(
            name=blob.name,
            bucket=self._bucket_name,
            size=blob.size or 0,
            content_type=blob.content_type,
            updated=blob.updated,
        )

    def list(self, prefix: str = "") -> list[str]:
        with self._backend_call("list", prefix):
            blobs = self._client.list_blobs(self._bucket_name, prefix=prefix or None, timeout=self._timeout)
            return [blob.name for blob in blobs if not is_directory_marker(blob.name)]

    # === Authorization ===

    def is_public(self) -> bool:
        """Check the bucket IAM policy for a public read binding."""
        with self._backend_call("get_iam_policy"):
            policy = self._bucket.get_iam_policy(
                requested_policy_version=IAM_POLICY_VERSION, timeout=self._timeout
            )
        for binding in policy.bindings:
            if binding.get("role") in PUBLIC_READ_ROLES and ALL_USERS in binding.get("members", ()):
                return True
        return False

    def get_download_url(self, key: str) -> DownloadUrl:
        self._require_key(key)
        public = self.is_public()
        with self._backend_call("get_download_url", key):
            blob = self._bucket.get_blob(key, timeout=self._timeout)
        if blob is None:
            raise NotFoundError(key, bucket=self._bucket_name)

        token = None if public else self.get_access_token()
        return DownloadUrl(url=blob.public_url, is_public=public, access_token=token)

    def get_access_token(self) -> AccessToken:
        try:
            credentials = self._key.credentials([SCOPE_READ_ONLY])
            credentials.refresh(self._auth_request or google_requests.Request())
        except CredentialError as e:
            raise AuthError(e.message, details=e.details) from e
        except gauth_exceptions.GoogleAuthError as e:
            raise AuthError(
                f"access token request failed: {e}",
                details={"client_email": self._key.client_email},
            ) from e
        if not credentials.token:
            raise AuthError("token endpoint returned no access token")
        return AccessToken.from_credentials(credentials)

    def signed_url(
        self, key: str, content_type: str, ttl: datetime.timedelta | int | float
    ) -> str:
        self._require_key(key)
        if not content_type:
            raise InvalidArgumentError("content type is required for signed URLs", field="content_type")
        expiration = normalize_ttl(ttl)
        try:
            return self._bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=expiration,
                method="PUT",
                content_type=content_type,
                credentials=self._credentials,
            )
        except Exception as e:
            raise AuthError(
                f"signing URL for {key} failed: {e}",
                details={"bucket": self._bucket_name, "key": key},
            ) from e

    # === Lifecycle ===

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
