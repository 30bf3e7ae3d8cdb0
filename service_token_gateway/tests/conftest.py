"""
Shared fixtures for Token Gateway tests.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import TokenGatewayConfig
from service_token_gateway.app.main import create_app


@pytest.fixture
def config_factory():
    """Build configs that ignore any .env file on the test machine."""

    def _make(**overrides) -> TokenGatewayConfig:
        values = {
            "moralis_server_url": "https://moralis.test/server",
            "moralis_app_id": "app-123",
            "secret_token": "test-secret-token",
            "_env_file": None,
        }
        values.update(overrides)
        return TokenGatewayConfig(**values)

    return _make


@pytest.fixture
def gateway_config(config_factory):
    return config_factory()


@pytest.fixture
def auth_headers(gateway_config):
    return {"authorization": gateway_config.secret_token}


@pytest.fixture
def client(gateway_config):
    return TestClient(create_app(gateway_config))


@pytest.fixture
def service(client):
    return client.app.state.gateway_service
