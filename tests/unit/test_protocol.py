"""Unit tests for the gateway wire protocol and the result models."""

import datetime

import pytest

from channel_storage.exceptions import AuthError
from channel_storage.exceptions import BackendUnavailableError
from channel_storage.exceptions import ConfigurationError
from channel_storage.exceptions import CredentialError
from channel_storage.exceptions import InternalError
from channel_storage.exceptions import InvalidArgumentError
from channel_storage.exceptions import NotFoundError
from channel_storage.gateway import protocol
from channel_storage.models import AccessToken
from channel_storage.models import DownloadUrl


class TestParseParams:
    """Tests for validating method params."""

    def test_save_file_decodes_base64(self):
        params = protocol.parse_params(protocol.SAVE_FILE, {"key": "a.txt", "file": "aGk="})

        assert params.key == "a.txt"
        assert params.file == b"hi"

    def test_invalid_base64_is_invalid_argument(self):
        with pytest.raises(InvalidArgumentError):
            protocol.parse_params(protocol.SAVE_FILE, {"key": "a.txt", "file": "not base64!"})

    def test_missing_key(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            protocol.parse_params(protocol.GET_FILE, {})

        assert exc_info.value.details["field"] == "key"

    def test_signed_url_params_use_wire_names(self):
        params = protocol.parse_params(
            protocol.GET_SIGNED_URL, {"key": "a.png", "contentType": "image/png", "expireSecs": 300}
        )

        assert params.content_type == "image/png"
        assert params.expire_secs == 300

    def test_list_defaults_to_whole_bucket(self):
        assert protocol.parse_params(protocol.LIST, None).path == ""

    def test_params_must_be_object(self):
        with pytest.raises(InvalidArgumentError):
            protocol.parse_params(protocol.EXIST, ["a.txt"])


class TestErrorMapping:
    """Each error class maps to its own code and back."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (NotFoundError("a.txt", bucket="b1"), protocol.NOT_FOUND),
            (InvalidArgumentError("channel is required"), protocol.INVALID_PARAMS),
            (ConfigurationError("bad entry"), protocol.INVALID_PARAMS),
            (CredentialError("unreadable"), protocol.CREDENTIAL_ERROR),
            (AuthError("denied"), protocol.AUTH_ERROR),
            (BackendUnavailableError("down"), protocol.BACKEND_UNAVAILABLE),
            (InternalError("boom"), protocol.INTERNAL_ERROR),
        ],
    )
    def test_class_survives_the_wire(self, error, code):
        wire = protocol.error_to_wire(error)

        rebuilt = protocol.error_from_wire(wire)

        assert wire["code"] == code
        assert type(rebuilt) is type(error)
        assert rebuilt.message == error.message

    def test_not_found_keeps_key(self):
        rebuilt = protocol.error_from_wire(protocol.error_to_wire(NotFoundError("a.txt", bucket="b1")))

        assert rebuilt.key == "a.txt"
        assert rebuilt.bucket == "b1"

    def test_unknown_code_is_internal(self):
        assert isinstance(protocol.error_from_wire({"code": -1, "message": "?"}), InternalError)

    def test_method_not_found_is_invalid_argument(self):
        rebuilt = protocol.error_from_wire({"code": protocol.METHOD_NOT_FOUND, "message": "Method not found: X"})

        assert isinstance(rebuilt, InvalidArgumentError)


class TestResultModels:
    """Tests for AccessToken and DownloadUrl on and off the wire."""

    def test_access_token_wire_shape(self):
        token = AccessToken.from_unix("ya29.t", "Bearer", "", 1_700_000_000)

        wire = protocol.access_token_to_wire(token)

        assert wire == {"accessToken": "ya29.t", "tokenType": "Bearer", "refreshToken": "", "expiry": 1_700_000_000}
        assert protocol.access_token_from_wire(wire) == token

    def test_public_download_url_omits_token(self):
        wire = protocol.download_url_to_wire(DownloadUrl(url="https://x/b/a", is_public=True))

        assert wire == {"url": "https://x/b/a", "isPublic": True}

    def test_private_download_url_requires_token(self):
        with pytest.raises(ValueError):
            DownloadUrl(url="https://x/b/a", is_public=False)

    def test_public_download_url_rejects_token(self):
        token = AccessToken(token="t", expiry=datetime.datetime.now(datetime.timezone.utc))

        with pytest.raises(ValueError):
            DownloadUrl(url="https://x/b/a", is_public=True, access_token=token)

    def test_naive_credential_expiry_is_utc(self):
        class Refreshed:
            token = "ya29.t"
            expiry = datetime.datetime(2030, 1, 1, 12, 0, 0)

        token = AccessToken.from_credentials(Refreshed())

        assert token.expiry == datetime.datetime(2030, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
        assert token.expiry_unix == 1893499200
