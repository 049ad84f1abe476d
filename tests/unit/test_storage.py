"""Unit tests for the local backend and the backend factory."""

import io
import json

import pytest

from channel_storage.config import ChannelConfig
from channel_storage.config import Settings
from channel_storage.exceptions import BackendUnavailableError
from channel_storage.exceptions import CredentialError
from channel_storage.exceptions import InvalidArgumentError
from channel_storage.exceptions import NotFoundError
from channel_storage.storage import BackendClientFactory
from channel_storage.storage import GCSStorageBackend
from channel_storage.storage import LocalStorageBackend
from channel_storage.storage import open_channel_storage


class TestLocalStorageBackend:
    """Tests for local filesystem storage backend."""

    @pytest.fixture
    def backend(self, tmp_path):
        return LocalStorageBackend(root_dir=tmp_path / "store")

    def test_backend_type(self, backend):
        assert backend.backend_type == "local"

    def test_round_trip(self, backend):
        backend.save("nested/path/file.bin", b"\x00\x01\x02")

        assert backend.get("nested/path/file.bin") == b"\x00\x01\x02"

    def test_save_stream(self, backend):
        backend.save_stream("s.txt", io.BytesIO(b"streamed"))

        assert backend.open("s.txt").read() == b"streamed"

    def test_exists_and_delete(self, backend):
        assert backend.exists("a.txt") is False
        backend.save("a.txt", b"x")
        assert backend.exists("a.txt") is True
        backend.delete("a.txt")
        assert backend.exists("a.txt") is False

    def test_missing_keys(self, backend):
        with pytest.raises(NotFoundError):
            backend.get("missing")
        with pytest.raises(NotFoundError):
            backend.delete("missing")

    def test_list_by_prefix(self, backend):
        backend.save("docs/a.md", b"a")
        backend.save("docs/sub/b.md", b"b")
        backend.save("other.txt", b"c")

        assert backend.list("docs/") == ["docs/a.md", "docs/sub/b.md"]
        assert backend.list() == ["docs/a.md", "docs/sub/b.md", "other.txt"]

    def test_stat(self, backend):
        backend.save("notes.txt", b"hello")

        info = backend.stat("notes.txt")

        assert info.size == 5
        assert info.content_type == "text/plain"

    def test_rejects_path_traversal(self, backend):
        with pytest.raises(InvalidArgumentError):
            backend.save("../escape.txt", b"x")


class TestBackendClientFactory:
    """Tests for building per-channel backends."""

    def test_build_scopes_backend_to_channel_bucket(self, backend_factory, key_file):
        backend = backend_factory.build(ChannelConfig(credentials_file=str(key_file), bucket="b1"))

        assert isinstance(backend, GCSStorageBackend)
        assert backend.bucket_name == "b1"
        assert backend.root_path == "gs://b1"

    def test_open_always_closes(self, backend_factory, key_file, fake_client):
        config = ChannelConfig(credentials_file=str(key_file), bucket="b1")

        with pytest.raises(NotFoundError):
            with backend_factory.open(config) as backend:
                backend.get("missing")

        assert fake_client.close_count == 1

    def test_malformed_key_file_is_credential_error(self, backend_factory, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"client_email": "a@b", "private_key": "garbage"}))

        with pytest.raises(CredentialError):
            backend_factory.build(ChannelConfig(credentials_file=str(bad), bucket="b1"))

    def test_client_construction_failure_is_unavailable(self, key_file, tmp_path):
        def unreachable(key):
            raise ConnectionError("metadata server unreachable")

        factory = BackendClientFactory(cache_dir=str(tmp_path / "cache"), client_builder=unreachable)

        with pytest.raises(BackendUnavailableError) as exc_info:
            factory.build(ChannelConfig(credentials_file=str(key_file), bucket="b1"))

        assert exc_info.value.details["bucket"] == "b1"

    def test_from_settings(self, tmp_path):
        settings = Settings(_env_file=None, credentials_cache_dir=str(tmp_path), backend_timeout=12)

        factory = BackendClientFactory.from_settings(settings)

        assert factory.backend_timeout == 12
        assert factory.resolver.cache_dir == tmp_path

    def test_requires_resolver_or_cache_dir(self):
        with pytest.raises(ValueError):
            BackendClientFactory()


class TestOpenChannelStorage:
    """Tests for resolving a channel and opening its backend in one step."""

    def test_opens_channel_bucket(self, channel_map, backend_factory, fake_client):
        with open_channel_storage(channel_map, "tenant2", backend_factory) as storage:
            storage.save("a.txt", b"hi")

        assert "a.txt" in fake_client.bucket("b2").objects
        assert "a.txt" not in fake_client.bucket("b1").objects

    def test_unknown_channel_never_builds(self, channel_map, tmp_path):
        built = []
        factory = BackendClientFactory(cache_dir=str(tmp_path), client_builder=built.append)

        with pytest.raises(InvalidArgumentError):
            with open_channel_storage(channel_map, "tenant3", factory):
                pass

        assert built == []
