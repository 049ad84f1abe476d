"""Pydantic models for the channel storage gateway.

These are the values the authorization subsystem hands back to callers.
They are created per call and never persisted.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import model_validator


class AccessToken(BaseModel):
    """Short-lived bearer token derived from service-account key material."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "Bearer"
    refresh_token: str = ""
    expiry: datetime.datetime

    @property
    def expiry_unix(self) -> int:
        return int(self.expiry.timestamp())

    @classmethod
    def from_credentials(cls, credentials) -> AccessToken:
        """Build from refreshed ``google.auth`` credentials.

        google-auth keeps ``expiry`` as a naive UTC datetime.
        """
        expiry = credentials.expiry
        if expiry is None:
            expiry = datetime.datetime.now(datetime.timezone.utc)
        elif expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=datetime.timezone.utc)
        return cls(token=credentials.token, expiry=expiry)

    @classmethod
    def from_unix(
        cls, token: str, token_type: str, refresh_token: str, expiry: int
    ) -> AccessToken:
        return cls(
            token=token,
            token_type=token_type or "Bearer",
            refresh_token=refresh_token or "",
            expiry=datetime.datetime.fromtimestamp(expiry, tz=datetime.timezone.utc),
        )


class DownloadUrl(BaseModel):
    """Download location of an object.

    ``access_token`` is present exactly when the bucket is not public; the
    token is meant to be sent as a bearer header, it is never part of ``url``.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    is_public: bool
    access_token: AccessToken | None = None

    @model_validator(mode="after")
    def token_iff_private(self) -> DownloadUrl:
        if self.is_public and self.access_token is not None:
            raise ValueError("public download URLs must not carry an access token")
        if not self.is_public and self.access_token is None:
            raise ValueError("private download URLs require an access token")
        return self


class ObjectInfo(BaseModel):
    """Metadata about a stored object."""

    name: str
    bucket: str
    size: int = 0
    content_type: str | None = None
    updated: datetime.datetime | None = None
