"""Wire protocol shared by the gateway and the remote client.

Requests are JSON-RPC 2.0 envelopes posted to ``/rpc``; the channel travels
in a request header, never in the params. Binary payloads are standard
base64. Errors carry a numeric code per error class plus structured data so
the client can raise the same exception class the backend raised.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator

from ..exceptions import AuthError
from ..exceptions import BackendUnavailableError
from ..exceptions import ChannelStorageError
from ..exceptions import ConfigurationError
from ..exceptions import CredentialError
from ..exceptions import InternalError
from ..exceptions import InvalidArgumentError
from ..exceptions import NotFoundError
from ..models import AccessToken
from ..models import DownloadUrl

JSONRPC_VERSION = "2.0"
RPC_PATH = "/rpc"

# === Methods ===

SAVE_FILE = "SaveFile"
GET_FILE = "GetFile"
DELETE = "Delete"
EXIST = "Exist"
LIST = "List"
GET_DOWNLOAD_URL = "GetDownloadUrl"
GET_SIGNED_URL = "GetSignedUrl"
GET_ACCESS_TOKEN = "GetAccessToken"

# === Error codes ===

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
NOT_FOUND = -32004
CREDENTIAL_ERROR = -32010
AUTH_ERROR = -32011
BACKEND_UNAVAILABLE = -32012

_ERROR_CODES: dict[type[ChannelStorageError], int] = {
    NotFoundError: NOT_FOUND,
    InvalidArgumentError: INVALID_PARAMS,
    CredentialError: CREDENTIAL_ERROR,
    AuthError: AUTH_ERROR,
    BackendUnavailableError: BACKEND_UNAVAILABLE,
    InternalError: INTERNAL_ERROR,
}

_ERROR_CLASSES: dict[int, type[ChannelStorageError]] = {code: cls for cls, code in _ERROR_CODES.items()}

_KNOWN_ERRORS = {cls.__name__: cls for cls in (*_ERROR_CODES, ConfigurationError)}


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_bytes(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e


# === Params ===


class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class KeyParams(_Params):
    key: str = Field(min_length=1)


class SaveFileParams(KeyParams):
    file: bytes

    @field_validator("file", mode="before")
    @classmethod
    def decode_file(cls, value: Any) -> bytes:
        if isinstance(value, str):
            return decode_bytes(value)
        raise ValueError("file must be a base64 string")


class ListParams(_Params):
    path: str = ""


class SignedUrlParams(KeyParams):
    content_type: str = Field(alias="contentType", min_length=1)
    expire_secs: int = Field(alias="expireSecs", gt=0)


class EmptyParams(_Params):
    pass


METHOD_PARAMS: dict[str, type[_Params]] = {
    SAVE_FILE: SaveFileParams,
    GET_FILE: KeyParams,
    DELETE: KeyParams,
    EXIST: KeyParams,
    LIST: ListParams,
    GET_DOWNLOAD_URL: KeyParams,
    GET_SIGNED_URL: SignedUrlParams,
    GET_ACCESS_TOKEN: EmptyParams,
}


def parse_params(method: str, params: Any) -> _Params:
    """Validate ``params`` for ``method``.

    Raises:
        InvalidArgumentError: If the params do not match the method.
    """
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidArgumentError("params must be an object", field="params")
    try:
        return METHOD_PARAMS[method].model_validate(params)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise InvalidArgumentError(f"invalid params for {method}: {first['msg']}", field=field) from e


# === Results ===


def access_token_to_wire(token: AccessToken) -> dict[str, Any]:
    return {
        "accessToken": token.token,
        "tokenType": token.token_type,
        "refreshToken": token.refresh_token,
        "expiry": token.expiry_unix,
    }


def access_token_from_wire(data: dict[str, Any]) -> AccessToken:
    return AccessToken.from_unix(
        token=data["accessToken"],
        token_type=data.get("tokenType", ""),
        refresh_token=data.get("refreshToken", ""),
        expiry=data["expiry"],
    )


def download_url_to_wire(download: DownloadUrl) -> dict[str, Any]:
    result: dict[str, Any] = {"url": download.url, "isPublic": download.is_public}
    if download.access_token is not None:
        result["token"] = access_token_to_wire(download.access_token)
    return result


def download_url_from_wire(data: dict[str, Any]) -> DownloadUrl:
    token = data.get("token")
    return DownloadUrl(
        url=data["url"],
        is_public=bool(data["isPublic"]),
        access_token=access_token_from_wire(token) if token else None,
    )


# === Envelopes ===


def error_code_for(cls: type[ChannelStorageError]) -> int:
    """JSON-RPC code of an error class, inherited through its bases."""
    for base in cls.__mro__:
        if base in _ERROR_CODES:
            return _ERROR_CODES[base]
    return INTERNAL_ERROR


def error_to_wire(error: ChannelStorageError) -> dict[str, Any]:
    return {
        "code": error_code_for(type(error)),
        "message": error.message,
        "data": {
            "error_type": type(error).__name__,
            "error_code": error.error_code,
            "details": error.details,
        },
    }


def error_from_wire(error: dict[str, Any]) -> ChannelStorageError:
    """Rebuild the exception a gateway error object describes."""
    code = error.get("code")
    message = error.get("message") or "gateway error"
    data = error.get("data") if isinstance(error.get("data"), dict) else {}
    details = data.get("details") if isinstance(data.get("details"), dict) else {}

    cls = _KNOWN_ERRORS.get(data.get("error_type"))
    if cls is None or error_code_for(cls) != code:
        cls = _ERROR_CLASSES.get(code, InternalError)

    if code == METHOD_NOT_FOUND:
        return InvalidArgumentError(message, field="method")
    if cls is NotFoundError:
        return NotFoundError(details.get("key", ""), bucket=details.get("bucket"), details=details, message=message)
    return cls(message, details=details)


def make_request(method: str, params: dict[str, Any], request_id: int | str) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def make_result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error(request_id: Any, code: int, message: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}
