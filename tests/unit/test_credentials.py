"""Unit tests for credential resolution and the fetch-once credential cache."""

import threading
import time

import pytest
import requests

from channel_storage.config import ChannelConfig
from channel_storage.exceptions import CredentialError
from channel_storage.helpers import credential_cache_path
from channel_storage.storage.credentials import SCOPE_READ_ONLY
from channel_storage.storage.credentials import CredentialResolver
from channel_storage.storage.credentials import ServiceAccountKey
from tests.shared.keys import TEST_CLIENT_EMAIL
from tests.shared.keys import service_account_json

KEY_URL = "https://keys.example.com/tenant2.json"


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """Counts fetches; optionally slow to widen race windows."""

    def __init__(self, response=None, delay=0.0, error=None):
        self.response = response or FakeResponse(200, service_account_json())
        self.delay = delay
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None):
        with self._lock:
            self.calls.append((url, timeout))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class TestServiceAccountKey:
    """Tests for parsing key material."""

    def test_from_json(self):
        key = ServiceAccountKey.from_json(service_account_json())

        assert key.client_email == TEST_CLIENT_EMAIL
        assert key.project_id == "test-project"
        assert "BEGIN PRIVATE KEY" in key.private_key

    def test_invalid_json(self):
        with pytest.raises(CredentialError, match="not valid JSON"):
            ServiceAccountKey.from_json(b"{not json", source="/keys/a.json")

    def test_missing_fields(self):
        with pytest.raises(CredentialError) as exc_info:
            ServiceAccountKey.from_json(b'{"client_email": "a@b"}')

        assert exc_info.value.details["missing"] == ["private_key"]

    def test_credentials_carry_scopes(self, service_key):
        credentials = service_key.credentials([SCOPE_READ_ONLY])

        assert credentials.service_account_email == TEST_CLIENT_EMAIL
        assert list(credentials.scopes) == [SCOPE_READ_ONLY]

    def test_malformed_private_key(self):
        key = ServiceAccountKey(
            client_email="a@b",
            private_key="not a key",
            info={"client_email": "a@b", "private_key": "not a key"},
        )

        with pytest.raises(CredentialError, match="malformed"):
            key.credentials([SCOPE_READ_ONLY])


class TestCredentialCachePath:
    """Tests for the content-addressed cache location."""

    def test_deterministic(self, tmp_path):
        assert credential_cache_path(KEY_URL, tmp_path) == credential_cache_path(KEY_URL, tmp_path)

    def test_distinct_per_url(self, tmp_path):
        other = credential_cache_path("https://keys.example.com/tenant3.json", tmp_path)

        assert credential_cache_path(KEY_URL, tmp_path) != other

    def test_under_cache_dir(self, tmp_path):
        path = credential_cache_path(KEY_URL, tmp_path)

        assert path.parent == tmp_path
        assert path.suffix == ".json"
        assert "keys.example.com" not in path.name


class TestCredentialResolver:
    """Tests for resolving a channel's credentials."""

    def test_file_source(self, tmp_path, key_file):
        resolver = CredentialResolver(tmp_path / "cache")

        key = resolver.resolve(ChannelConfig(credentials_file=str(key_file), bucket="b1"))

        assert key.client_email == TEST_CLIENT_EMAIL

    def test_missing_file_source(self, tmp_path):
        resolver = CredentialResolver(tmp_path / "cache")

        with pytest.raises(CredentialError, match="cannot read"):
            resolver.resolve(ChannelConfig(credentials_file=str(tmp_path / "nope.json"), bucket="b1"))

    def test_url_source_fetched_once(self, tmp_path):
        session = FakeSession()
        resolver = CredentialResolver(tmp_path, fetch_timeout=7.0, session=session)
        config = ChannelConfig(credentials_url=KEY_URL, bucket="b2")

        first = resolver.resolve(config)
        second = resolver.resolve(config)

        assert first.client_email == second.client_email == TEST_CLIENT_EMAIL
        assert session.calls == [(KEY_URL, 7.0)]
        assert credential_cache_path(KEY_URL, tmp_path).read_bytes() == service_account_json()

    def test_existing_cache_file_is_never_refetched(self, tmp_path):
        cached = credential_cache_path(KEY_URL, tmp_path)
        cached.write_bytes(service_account_json("cached@test-project.iam.gserviceaccount.com"))
        session = FakeSession()
        resolver = CredentialResolver(tmp_path, session=session)

        key = resolver.resolve(ChannelConfig(credentials_url=KEY_URL, bucket="b2"))

        assert key.client_email == "cached@test-project.iam.gserviceaccount.com"
        assert session.calls == []

    def test_concurrent_first_fetch_is_serialized(self, tmp_path):
        session = FakeSession(delay=0.05)
        resolver = CredentialResolver(tmp_path, session=session)
        results = []

        def fetch():
            results.append(resolver.cached_credentials(KEY_URL))

        threads = [threading.Thread(target=fetch) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(session.calls) == 1
        assert set(results) == {credential_cache_path(KEY_URL, tmp_path)}
        assert [p.name for p in tmp_path.iterdir()] == [credential_cache_path(KEY_URL, tmp_path).name]

    def test_bad_status_leaves_no_cache_file(self, tmp_path):
        resolver = CredentialResolver(tmp_path, session=FakeSession(FakeResponse(403, b"denied")))

        with pytest.raises(CredentialError, match="bad status 403"):
            resolver.cached_credentials(KEY_URL)

        assert list(tmp_path.iterdir()) == []

    def test_network_failure(self, tmp_path):
        resolver = CredentialResolver(tmp_path, session=FakeSession(error=requests.ConnectionError("refused")))

        with pytest.raises(CredentialError, match="fetching credentials failed"):
            resolver.cached_credentials(KEY_URL)

    def test_malformed_download(self, tmp_path):
        resolver = CredentialResolver(tmp_path, session=FakeSession(FakeResponse(200, b"<html>")))

        with pytest.raises(CredentialError, match="not valid JSON"):
            resolver.resolve(ChannelConfig(credentials_url=KEY_URL, bucket="b2"))
