"""Test configuration and fixtures."""

from collections.abc import Generator
from unittest.mock import patch

import pytest
from fakes import FakeHarbor, InMemoryCluster, server_config_body
from fastapi.testclient import TestClient

from harbor_operator.config import OperatorSettings, reset_settings
from harbor_operator.webhooks.app import app
from harbor_operator.webhooks.dependencies import get_cluster, get_operator_settings


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Settings are cached per process; start every test from the environment."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> OperatorSettings:
    return OperatorSettings()


@pytest.fixture
def cluster() -> InMemoryCluster:
    """Cluster with an access secret and a healthy default server configuration."""
    fake = InMemoryCluster()
    fake.add_access_secret()
    fake.add_server_config(server_config_body("harbor-default", default=True))
    return fake


@pytest.fixture
def harbor() -> FakeHarbor:
    return FakeHarbor()


@pytest.fixture
def mock_k8s_config() -> Generator[None, None, None]:
    """Mock Kubernetes configuration loading."""
    with (
        patch("harbor_operator.main.config.load_incluster_config"),
        patch("harbor_operator.main.config.load_kube_config"),
    ):
        yield


@pytest.fixture
def client(
    cluster: InMemoryCluster, settings: OperatorSettings
) -> Generator[TestClient, None, None]:
    """Test client for the webhook app backed by the in-memory cluster."""
    app.dependency_overrides[get_cluster] = lambda: cluster
    app.dependency_overrides[get_operator_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
