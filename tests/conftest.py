"""The pytest configuration for channel storage testing.

Provides service-account key material, an in-memory storage client and a
two-channel configuration map shared by the unit and integration suites.
"""

import datetime
import os

import pytest
from fastapi.testclient import TestClient
from google.oauth2 import service_account

from channel_storage.config import ChannelConfigMap
from channel_storage.config import Settings
from channel_storage.config import reset_settings
from channel_storage.gateway import create_app
from channel_storage.storage.credentials import ServiceAccountKey
from channel_storage.storage.factory import BackendClientFactory
from channel_storage.storage.gcs import GCSStorageBackend
from tests.shared.fake_gcs import FakeStorageClient
from tests.shared.keys import service_account_info
from tests.shared.keys import service_account_json


@pytest.fixture(scope="session", autouse=True)
def disable_metrics_for_tests():
    """Keep OpenTelemetry metrics off for the whole session."""
    original_value = os.environ.get("ENABLE_METRICS")
    os.environ["ENABLE_METRICS"] = "false"
    yield
    if original_value is not None:
        os.environ["ENABLE_METRICS"] = original_value
    else:
        os.environ.pop("ENABLE_METRICS", None)


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def key_info():
    return service_account_info()


@pytest.fixture
def service_key():
    return ServiceAccountKey.from_json(service_account_json(), source="test")


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "keys" / "service-account.json"
    path.parent.mkdir()
    path.write_bytes(service_account_json())
    return path


@pytest.fixture
def fake_client():
    return FakeStorageClient()


@pytest.fixture
def gcs_backend(service_key, fake_client):
    return GCSStorageBackend("test-bucket", service_key, client=fake_client, timeout=5.0)


@pytest.fixture
def channel_map(key_file):
    """Two tenants with separate buckets, as deployment files describe them."""
    return ChannelConfigMap.from_dict(
        {
            "tenant1": {"credentialsFile": str(key_file), "bucket": "b1"},
            "tenant2": {"credentialsFile": str(key_file), "bucket": "b2"},
        }
    )


@pytest.fixture
def backend_factory(tmp_path, fake_client):
    return BackendClientFactory(
        cache_dir=str(tmp_path / "cache"),
        backend_timeout=5.0,
        client_builder=lambda key: fake_client,
    )


@pytest.fixture
def token_refresh(monkeypatch):
    """Replace the OAuth token grant with a local one.

    Returns the list of scope sets every refresh was requested with.
    """
    requested_scopes = []

    def refresh(self, request):
        requested_scopes.append(tuple(self.scopes or ()))
        self.token = "ya29.test-token"
        # google-auth keeps expiry naive in UTC
        self.expiry = (
            datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=1)
        ).replace(tzinfo=None)

    monkeypatch.setattr(service_account.Credentials, "refresh", refresh)
    return requested_scopes


@pytest.fixture
def gateway_settings(tmp_path):
    return Settings(_env_file=None, credentials_cache_dir=str(tmp_path / "cache"), enable_metrics=False)


@pytest.fixture
def gateway_client(channel_map, backend_factory, gateway_settings):
    """TestClient for a gateway serving tenant1 (bucket b1) and tenant2 (bucket b2)."""
    app = create_app(channel_map, backend_factory, settings=gateway_settings)
    with TestClient(app) as client:
        yield client
