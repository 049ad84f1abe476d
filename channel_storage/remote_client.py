"""Remote client for the channel storage gateway.

RemoteStorageBackend mirrors the in-process GCS backend over the gateway's
JSON-RPC endpoint: same methods, same return types, same exception classes.
Each instance is bound to one channel, sent as a header on every call.
"""

from __future__ import annotations

import datetime
import io
import itertools
import logging
import math
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from typing import BinaryIO

import requests

from .config.settings import Settings
from .exceptions import BackendUnavailableError
from .exceptions import InternalError
from .exceptions import InvalidArgumentError
from .gateway import protocol
from .models import AccessToken
from .models import DownloadUrl
from .storage.base import AuthorizationBackend
from .storage.base import StorageBackend
from .storage.base import normalize_ttl

logger = logging.getLogger(__name__)

_UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


class RemoteStorageBackend(StorageBackend, AuthorizationBackend):
    """Storage backend talking to a channel storage gateway.

    Args:
        gateway_url: Base URL of the gateway, e.g. ``http://127.0.0.1:1080``.
        channel: Channel every call operates on.
        session: Object with a ``requests``-style ``post``; a
            ``requests.Session`` owned by the client is created when omitted.
        timeout: Per-call timeout in seconds.
        channel_header: Header name carrying the channel.
    """

    def __init__(
        self,
        gateway_url: str,
        channel: str,
        session=None,
        timeout: float = 60.0,
        channel_header: str = "X-Channel",
    ):
        if not channel:
            raise InvalidArgumentError("channel is required", field="channel")
        self.gateway_url = gateway_url.rstrip("/")
        self.channel = channel
        self.timeout = timeout
        self.channel_header = channel_header
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, channel: str, settings: Settings, session=None) -> RemoteStorageBackend:
        return cls(
            settings.gateway_url,
            channel,
            session=session,
            timeout=settings.client_timeout,
            channel_header=settings.channel_header,
        )

    @property
    def backend_type(self) -> str:
        return "remote"

    @property
    def root_path(self) -> str:
        return f"{self.gateway_url}{protocol.RPC_PATH}#{self.channel}"

    def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Post one JSON-RPC request and return its ``result`` member.

        Raises:
            ChannelStorageError: The error class the gateway reported.
            BackendUnavailableError: If the gateway cannot be reached in time.
            InternalError: If the response is not a JSON-RPC response.
        """
        payload = protocol.make_request(method, params or {}, next(self._ids))
        url = f"{self.gateway_url}{protocol.RPC_PATH}"
        try:
            resp = self._session.post(
                url, json=payload, headers={self.channel_header: self.channel}, timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise BackendUnavailableError(
                f"gateway {self.gateway_url} unreachable: {e}", details={"method": method}
            ) from e

        try:
            body = resp.json()
        except ValueError as e:
            error_cls = BackendUnavailableError if resp.status_code in _UNAVAILABLE_STATUSES else InternalError
            raise error_cls(
                f"gateway returned a non-JSON response (HTTP {resp.status_code})",
                details={"method": method, "status_code": resp.status_code},
            ) from e

        if not isinstance(body, dict):
            raise InternalError("gateway response is not a JSON-RPC object", details={"method": method})
        if body.get("error") is not None:
            error = protocol.error_from_wire(body["error"])
            logger.debug(f"[{self.channel}] {method} failed: {error.error_code} {error.message}")
            raise error
        result = body.get("result")
        if not isinstance(result, dict):
            raise InternalError("gateway response carries no result", details={"method": method})
        return result

    @contextmanager
    def _decoding(self, method: str) -> Iterator[None]:
        """Turn a result that does not match the method's shape into InternalError."""
        try:
            yield
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InternalError(
                "gateway returned a malformed result", details={"method": method, "reason": str(e)}
            ) from e

    # === Object Operations ===

    def save(self, key: str, data: bytes) -> str:
        result = self._call(protocol.SAVE_FILE, {"key": key, "file": protocol.encode_bytes(data)})
        with self._decoding(protocol.SAVE_FILE):
            return result["url"]

    def save_stream(self, key: str, reader: BinaryIO) -> str:
        """Upload the contents of ``reader``.

        The JSON-RPC transport carries whole payloads, so the stream is
        read into memory before sending.
        """
        return self.save(key, reader.read())

    def get(self, key: str) -> bytes:
        result = self._call(protocol.GET_FILE, {"key": key})
        with self._decoding(protocol.GET_FILE):
            return protocol.decode_bytes(result["file"])

    def open(self, key: str) -> BinaryIO:
        return io.BytesIO(self.get(key))

    def delete(self, key: str) -> None:
        self._call(protocol.DELETE, {"key": key})

    def exists(self, key: str) -> bool:
        return bool(self._call(protocol.EXIST, {"key": key}).get("exist"))

    def list(self, prefix: str = "") -> list[str]:
        result = self._call(protocol.LIST, {"path": prefix})
        with self._decoding(protocol.LIST):
            return [str(name) for name in result.get("files") or []]

    # === Authorization ===

    def get_download_url(self, key: str) -> DownloadUrl:
        result = self._call(protocol.GET_DOWNLOAD_URL, {"key": key})
        with self._decoding(protocol.GET_DOWNLOAD_URL):
            return protocol.download_url_from_wire(result)

    def get_access_token(self) -> AccessToken:
        result = self._call(protocol.GET_ACCESS_TOKEN)
        with self._decoding(protocol.GET_ACCESS_TOKEN):
            return protocol.access_token_from_wire(result)

    def signed_url(
        self, key: str, content_type: str, ttl: datetime.timedelta | int | float
    ) -> str:
        expire_secs = math.ceil(normalize_ttl(ttl).total_seconds())
        result = self._call(
            protocol.GET_SIGNED_URL,
            {"key": key, "contentType": content_type, "expireSecs": expire_secs},
        )
        with self._decoding(protocol.GET_SIGNED_URL):
            return result["url"]

    # === Lifecycle ===

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
