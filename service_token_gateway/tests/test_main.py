"""
Unit tests for the Token Gateway routes.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from shared.errors import UpstreamError
from service_token_gateway.app.main import create_app


class TestRootRoute:
    """The open greeting route."""

    def test_root_returns_greeting(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "Hello, API!"
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.parametrize("headers", [{}, {"authorization": "wrong"}, {"authorization": "test-secret-token"}])
    def test_root_ignores_authorization(self, client, headers):
        response = client.get("/", headers=headers)

        assert response.status_code == 200
        assert response.text == "Hello, API!"


class TestTokenDataRoute:
    """The protected token data route."""

    @pytest.mark.parametrize("headers", [
        {},
        {"authorization": "wrong"},
        {"authorization": "Bearer test-secret-token"},
        {"authorization": "TEST-SECRET-TOKEN"},
    ])
    def test_rejects_bad_credentials_without_upstream_call(self, client, service, headers):
        service.moralis_client.fetch_token_data = AsyncMock()

        response = client.get("/api/tokenData/0xABC", headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == "AUTHORIZATION_ERROR"
        service.moralis_client.fetch_token_data.assert_not_awaited()

    def test_returns_price_and_metadata(self, client, service, auth_headers):
        service.moralis_client.fetch_token_data = AsyncMock(
            return_value=({"usdPrice": 1.23, "exchangeName": "Uniswap v3"}, {"name": "X"})
        )

        response = client.get("/api/tokenData/0xABC", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"price": 1.23, "metadata": {"name": "X"}}

    def test_integer_price_is_not_coerced(self, client, service, auth_headers):
        service.moralis_client.fetch_token_data = AsyncMock(return_value=({"usdPrice": 3}, {"name": "X"}))

        response = client.get("/api/tokenData/0xABC", headers=auth_headers)

        assert response.status_code == 200
        assert isinstance(response.json()["price"], int)

    def test_passes_address_through_unmodified(self, client, service, auth_headers):
        service.moralis_client.fetch_token_data = AsyncMock(return_value=({"usdPrice": 2.5}, {"name": "Y"}))

        client.get("/api/tokenData/0xABC", headers=auth_headers)
        client.get("/api/tokenData/0xaBc", headers=auth_headers)

        addresses = [call.args[0] for call in service.moralis_client.fetch_token_data.await_args_list]
        assert addresses == ["0xABC", "0xaBc"]

    def test_upstream_failure_returns_structured_error(self, client, service, auth_headers):
        service.moralis_client.fetch_token_data = AsyncMock(
            side_effect=UpstreamError("price", "Request failed: ConnectError")
        )

        response = client.get("/api/tokenData/0xABC", headers=auth_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to fetch token data"
        assert body["details"]["source"] == "price"

        # The process keeps serving after an upstream failure
        assert client.get("/").status_code == 200

    def test_unexpected_handler_error_returns_plain_text(self, client, service, auth_headers):
        service.token_data_service.get_token_data = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.get("/api/tokenData/0xABC", headers=auth_headers)

        assert response.status_code == 500
        assert response.text == "Error retrieving token data"
        assert response.headers["content-type"].startswith("text/plain")


class TestFallbackErrorResponder:
    """Errors that escape every route-level handler."""

    def test_unhandled_exception_returns_generic_message(self, gateway_config):
        app = create_app(gateway_config)
        service = app.state.gateway_service
        service.rate_limiter.hit = AsyncMock(side_effect=RuntimeError("limiter exploded"))
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/")

        assert response.status_code == 500
        assert response.text == "Something broke!"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_route_error_response_keeps_outer_headers(self, client, service, auth_headers):
        service.auth_gate.is_authorized = MagicMock(side_effect=TypeError("bad header"))

        response = client.get("/api/tokenData/0xABC", headers=auth_headers)

        assert response.status_code == 500
        assert response.text == "Something broke!"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert "X-Request-ID" in response.headers

        # The process keeps serving afterwards
        assert client.get("/").status_code == 200


class TestUnknownApiPaths:
    """Paths under /api that match no route."""

    @pytest.mark.parametrize("path", ["/api", "/api/", "/api/unknown", "/api/tokenData/", "/api/tokenData/0xABC/extra"])
    def test_unauthenticated_requests_are_forbidden(self, client, path):
        response = client.get(path)

        assert response.status_code == 403
        assert response.json()["code"] == "AUTHORIZATION_ERROR"

    def test_other_methods_are_forbidden_without_credentials(self, client):
        assert client.post("/api/tokenData/0xABC").status_code == 403

    @pytest.mark.parametrize("path", ["/api/unknown", "/api/tokenData/"])
    def test_authenticated_requests_are_not_found(self, client, auth_headers, path):
        assert client.get(path, headers=auth_headers).status_code == 404

    def test_paths_outside_api_stay_open(self, client):
        assert client.get("/unknown").status_code == 404


class TestRateLimiting:
    """Rate limiting as seen through the HTTP surface."""

    def test_requests_beyond_limit_are_rejected(self, client):
        statuses = [client.get("/").status_code for _ in range(100)]
        assert statuses == [200] * 100

        response = client.get("/")

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMIT_ERROR"
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_limit_covers_protected_route_before_auth(self, config_factory):
        client = TestClient(create_app(config_factory(rate_limit_max_requests=2)))

        assert client.get("/").status_code == 200
        assert client.get("/api/tokenData/0xABC").status_code == 403
        assert client.get("/api/tokenData/0xABC").status_code == 429

    def test_forwarded_header_ignored_unless_trusted(self, config_factory):
        client = TestClient(create_app(config_factory(rate_limit_max_requests=1)))

        assert client.get("/", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        assert client.get("/", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 429

    def test_forwarded_header_used_when_trusted(self, config_factory):
        client = TestClient(create_app(config_factory(rate_limit_max_requests=1, trust_proxy_headers=True)))

        assert client.get("/", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        assert client.get("/", headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"}).status_code == 200
        assert client.get("/", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429

    def test_allowed_responses_carry_rate_limit_headers(self, client):
        response = client.get("/")

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert 0 < int(response.headers["X-RateLimit-Reset"]) <= 900

    def test_rejections_are_counted_per_route_template(self, config_factory):
        app = create_app(config_factory(rate_limit_max_requests=1))
        client = TestClient(app)

        for i in range(51):
            client.get(f"/api/tokenData/0x{i:040x}")

        series = [
            line for line in app.state.gateway_service.metrics.export().decode().splitlines()
            if line.startswith("rate_limit_rejections_total{")
        ]
        assert len(series) == 1
        assert 'endpoint="/api/tokenData/{token_address}"' in series[0]
        assert series[0].endswith(" 50.0")


class TestAmbientRoutes:
    """Security headers, health and metrics."""

    def test_security_headers_present(self, client):
        response = client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert "Strict-Transport-Security" not in response.headers
        assert "X-Request-ID" in response.headers

    def test_hsts_outside_local_env(self, config_factory):
        client = TestClient(create_app(config_factory(env="production")))

        assert "Strict-Transport-Security" in client.get("/").headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_health_reports_rate_limiter(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "gateway"
        assert body["status"] == "ok"
        assert body["dependencies"] == {"rate_limiter_memory": "ok"}

    def test_metrics_exposes_request_counters(self, client, service, auth_headers):
        service.moralis_client.fetch_token_data = AsyncMock(return_value=({"usdPrice": 1.0}, {"name": "X"}))
        client.get("/api/tokenData/0xABC", headers=auth_headers)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
