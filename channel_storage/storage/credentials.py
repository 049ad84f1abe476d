"""Service-account credential resolution.

A channel names its credentials either as a local key file or as a URL.
URL sources are fetched once into a content-addressed cache file and read
from disk afterwards; the cache is never refreshed or expired.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

import requests
from google.oauth2 import service_account

from ..config.channels import ChannelConfig
from ..exceptions import CredentialError
from ..helpers import credential_cache_path
from ..helpers import file_exists

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPE_FULL_CONTROL = "https://www.googleapis.com/auth/devstorage.full_control"
SCOPE_READ_ONLY = "https://www.googleapis.com/auth/devstorage.read_only"


@dataclass(frozen=True)
class ServiceAccountKey:
    """Parsed service-account key material.

    Attributes:
        client_email: Service account identity used as the signer.
        private_key: PEM private key used for token grants and URL signing.
        project_id: GCP project of the service account, if present.
        info: The complete key document.
    """

    client_email: str
    private_key: str
    project_id: str | None = None
    info: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: bytes | str, source: str = "<memory>") -> ServiceAccountKey:
        try:
            info = json.loads(data)
        except (TypeError, ValueError) as e:
            raise CredentialError(
                f"credentials from {source} are not valid JSON: {e}",
                details={"source": source},
            ) from e
        if not isinstance(info, dict):
            raise CredentialError(
                f"credentials from {source} must be a JSON object", details={"source": source}
            )

        missing = [name for name in ("client_email", "private_key") if not info.get(name)]
        if missing:
            raise CredentialError(
                f"credentials from {source} missing fields: {', '.join(missing)}",
                details={"source": source, "missing": missing},
            )
        return cls(
            client_email=info["client_email"],
            private_key=info["private_key"],
            project_id=info.get("project_id"),
            info=info,
        )

    def credentials(self, scopes: list[str]) -> service_account.Credentials:
        """Derive google-auth credentials restricted to ``scopes``."""
        info = dict(self.info)
        info.setdefault("token_uri", GOOGLE_TOKEN_URI)
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=scopes)
        except (ValueError, TypeError) as e:
            raise CredentialError(
                f"malformed service account key for {self.client_email}: {e}",
                details={"client_email": self.client_email},
            ) from e


class CredentialResolver:
    """Loads the key material a channel configuration points to.

    Concurrent first-time fetches of the same URL within this process are
    serialized; across processes the temp-file-then-rename write keeps the
    cache file whole (last writer wins).
    """

    def __init__(self, cache_dir: str | os.PathLike[str], fetch_timeout: float = 30.0, session=None):
        self.cache_dir = Path(cache_dir)
        self.fetch_timeout = fetch_timeout
        self._session = session
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def resolve(self, config: ChannelConfig) -> ServiceAccountKey:
        if config.credentials_url:
            path = self.cached_credentials(config.credentials_url)
        else:
            path = Path(config.credentials_file)
        return ServiceAccountKey.from_json(self._read(path), source=str(path))

    def cached_credentials(self, url: str) -> Path:
        """Return the local cache file for ``url``, fetching it on first use."""
        path = credential_cache_path(url, self.cache_dir)
        if file_exists(path):
            return path
        with self._lock_for(url):
            if not file_exists(path):
                self._download(url, path)
        return path

    def _lock_for(self, url: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(url, threading.Lock())

    def _download(self, url: str, path: Path) -> None:
        logger.info("Fetching credentials into cache", extra={"cache_path": str(path)})
        getter = self._session.get if self._session is not None else requests.get
        try:
            resp = getter(url, timeout=self.fetch_timeout)
        except requests.RequestException as e:
            raise CredentialError(
                f"fetching credentials failed: {e}", details={"cache_path": str(path)}
            ) from e
        if resp.status_code != 200:
            raise CredentialError(
                f"fetching credentials failed: bad status {resp.status_code}",
                details={"cache_path": str(path), "status_code": resp.status_code},
            )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".cred-", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(resp.content)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CredentialError(
                f"cannot write credentials cache {path}: {e}", details={"cache_path": str(path)}
            ) from e

    @staticmethod
    def _read(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise CredentialError(
                f"cannot read credentials file {path}: {e}", details={"path": str(path)}
            ) from e
