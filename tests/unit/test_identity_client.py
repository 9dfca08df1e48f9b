"""Unit tests for the identity provider client"""

import asyncio
import httpx
import pytest
from unittest.mock import patch
from finboard.domain.exceptions import IdentityProviderError
from finboard.infrastructure.clients.identity import IdentityClient


def _client_with(handler):
    """IdentityClient whose AsyncClient talks to an in-process mock transport"""
    transport = httpx.MockTransport(handler)
    real_async_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_async_client(*args, transport=transport, **kwargs)

    patcher = patch("finboard.infrastructure.clients.identity.httpx.AsyncClient", side_effect=factory)
    patcher.start()
    return IdentityClient(base_url="http://identity.test", api_key="anon-key", timeout=1.0), patcher


def _resolve(handler, token="token-123"):
    client, patcher = _client_with(handler)
    try:
        return asyncio.run(client.get_principal(token))
    finally:
        patcher.stop()


def test_resolves_principal_with_role():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["apikey"] = request.headers["apikey"]
        return httpx.Response(200, json={"id": "u-1", "app_metadata": {"role_name": "admin"}})

    principal = _resolve(handler)

    assert principal.user_id == "u-1"
    assert principal.role == "admin"
    assert seen == {"path": "/auth/v1/user", "auth": "Bearer token-123", "apikey": "anon-key"}


def test_missing_role_defaults_to_user():
    principal = _resolve(lambda request: httpx.Response(200, json={"id": "u-2"}))
    assert principal.role == "user"


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_token_returns_none(status):
    assert _resolve(lambda request: httpx.Response(status)) is None


def test_server_error_raises():
    with pytest.raises(IdentityProviderError):
        _resolve(lambda request: httpx.Response(500))


def test_timeout_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(IdentityProviderError):
        _resolve(handler)


def test_malformed_payload_raises():
    with pytest.raises(IdentityProviderError):
        _resolve(lambda request: httpx.Response(200, json={"email": "no-id@example.com"}))
