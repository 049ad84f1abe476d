"""Exception hierarchy for the channel storage gateway.

Every failure that leaves a storage backend, the authorization subsystem,
the gateway or the remote client is one of the classes below. Backend SDK
errors are classified once, where they are first observed, through
:func:`classify_backend_error`; callers never see raw google-api-core or
requests exceptions.
"""

from __future__ import annotations

from typing import Any

import requests
from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as gauth_exceptions


class ChannelStorageError(Exception):
    """Base exception for all channel storage errors.

    Attributes:
        message: Technical error message.
        error_code: Stable machine-readable code.
        details: Extra structured context (channel, key, operation, ...).
        user_message: Message safe to show to remote callers.
    """

    default_error_code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.user_message = user_message or message

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a JSON-serializable dictionary."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
        }


class NotFoundError(ChannelStorageError):
    """Raised when an object does not exist in the channel's bucket."""

    default_error_code = "NOT_FOUND"

    def __init__(
        self,
        key: str,
        bucket: str | None = None,
        details: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        merged = {"key": key}
        if bucket:
            merged["bucket"] = bucket
        merged.update(details or {})
        super().__init__(
            message=message or f"Object '{key}' not found",
            details=merged,
            user_message=f"Object '{key}' does not exist",
        )
        self.key = key
        self.bucket = bucket


class InvalidArgumentError(ChannelStorageError):
    """Raised for caller mistakes: missing/unknown channel, bad key, bad TTL."""

    default_error_code = "INVALID_ARGUMENT"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if field:
            merged["field"] = field
        if value is not None:
            merged["invalid_value"] = value
        super().__init__(message, details=merged)


class ConfigurationError(InvalidArgumentError):
    """Raised when a channel configuration document or entry is unusable."""

    default_error_code = "CONFIGURATION_ERROR"


class CredentialError(ChannelStorageError):
    """Raised when credential material cannot be read, fetched or parsed."""

    default_error_code = "CREDENTIAL_ERROR"


class AuthError(ChannelStorageError):
    """Raised when token issuance, signing or backend authorization fails."""

    default_error_code = "AUTH_ERROR"


class BackendUnavailableError(ChannelStorageError):
    """Raised when the backend (or the gateway) cannot be reached."""

    default_error_code = "BACKEND_UNAVAILABLE"


class InternalError(ChannelStorageError):
    """Raised for unclassified backend failures."""

    default_error_code = "INTERNAL_ERROR"


_UNAVAILABLE_ERRORS = (
    gapi_exceptions.ServiceUnavailable,
    gapi_exceptions.GatewayTimeout,
    gapi_exceptions.RetryError,
    gauth_exceptions.TransportError,
    requests.ConnectionError,
    requests.Timeout,
    TimeoutError,
    ConnectionError,
)

_AUTH_ERRORS = (
    gapi_exceptions.Unauthorized,
    gapi_exceptions.Forbidden,
    gauth_exceptions.RefreshError,
)


def classify_backend_error(
    exc: BaseException,
    *,
    key: str | None = None,
    bucket: str | None = None,
    operation: str | None = None,
) -> ChannelStorageError:
    """Map a backend or transport exception to the error taxonomy.

    Already-classified errors are returned unchanged so classification is
    idempotent across layers.
    """
    if isinstance(exc, ChannelStorageError):
        return exc

    details: dict[str, Any] = {}
    if bucket:
        details["bucket"] = bucket
    if operation:
        details["operation"] = operation

    if isinstance(exc, gapi_exceptions.NotFound):
        return NotFoundError(key or "", bucket=bucket, details=details)
    if isinstance(exc, (gapi_exceptions.BadRequest, gapi_exceptions.PreconditionFailed)):
        return InvalidArgumentError(str(exc), field="key", value=key, details=details)
    if isinstance(exc, _AUTH_ERRORS):
        return AuthError(str(exc), details=details)
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return BackendUnavailableError(str(exc), details=details)
    if key:
        details["key"] = key
    return InternalError(f"{type(exc).__name__}: {exc}", details=details)


__all__ = [
    "AuthError",
    "BackendUnavailableError",
    "ChannelStorageError",
    "ConfigurationError",
    "CredentialError",
    "InternalError",
    "InvalidArgumentError",
    "NotFoundError",
    "classify_backend_error",
]
