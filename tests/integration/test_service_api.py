"""Integration tests for service endpoints, auth plumbing and capabilities"""

from fastapi.testclient import TestClient
from finboard.api.dependencies import get_identity_client
from finboard.domain.exceptions import IdentityProviderError


class UnavailableIdentityClient:
    async def get_principal(self, access_token: str):
        raise IdentityProviderError("Identity provider timeout after 5.0s")


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "finboard"}


def test_metrics_endpoint(client: TestClient):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_request_duration_seconds" in response.text
    assert "finboard_coupon_evaluations_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "trace-abc"})
    assert response.headers["X-Request-ID"] == "trace-abc"


def test_request_id_is_generated(client: TestClient):
    assert client.get("/health").headers["X-Request-ID"]


def test_non_bearer_header_is_unauthorized(client: TestClient):
    response = client.get("/v1/me/capabilities", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 401


def test_identity_outage_is_service_unavailable(client: TestClient, user_headers):
    client.app.dependency_overrides[get_identity_client] = lambda: UnavailableIdentityClient()

    response = client.get("/v1/me/capabilities", headers=user_headers)
    assert response.status_code == 503


def test_user_capabilities(client: TestClient, user_headers):
    response = client.get("/v1/me/capabilities", headers=user_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "user-1"
    assert data["role"] == "user"
    assert set(data["capabilities"]) == {"manage_own_finances", "submit_payment"}


def test_admin_capabilities(client: TestClient, admin_headers):
    capabilities = client.get("/v1/me/capabilities", headers=admin_headers).json()["capabilities"]

    assert "manage_coupons" in capabilities
    assert "manage_payments" in capabilities
    assert "run_migrations" not in capabilities
