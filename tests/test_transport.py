"""Tests for the per-backend authenticated transport."""

import base64
from types import MappingProxyType
from unittest.mock import patch

import httpx
import pytest

from prometheus_mcp_gateway.config import AuthConfig, BackendConfig
from prometheus_mcp_gateway.transport import (
    ORG_ID_HEADER,
    AuthenticatedTransport,
    basic_auth_header,
    org_id_extensions,
)


def _request(url="http://prom:9090/api/v1/query", headers=None, org_id=None):
    return httpx.Request("GET", url, params={"query": "up"}, headers=headers,
                         extensions=org_id_extensions(org_id))


def _sent_request(mock_send):
    mock_send.assert_called_once()
    return mock_send.call_args[0][0]


@pytest.mark.asyncio
async def test_basic_auth_header(mock_transport_send):
    """Basic auth with username and password sets a base64 Authorization header."""
    backend = BackendConfig(name="prom", url="http://prom:9090",
                            auth=AuthConfig(type="basic", username="admin", password="secret"))
    await AuthenticatedTransport(backend).handle_async_request(_request())

    sent = _sent_request(mock_transport_send)
    expected = "Basic " + base64.b64encode(b"admin:secret").decode("ascii")
    assert sent.headers["Authorization"] == expected
    assert basic_auth_header("admin", "secret") == expected


@pytest.mark.asyncio
async def test_token_auth_header(mock_transport_send):
    """Token auth sets a Bearer Authorization header."""
    backend = BackendConfig(name="prom", url="http://prom:9090", auth=AuthConfig(type="token", token="abc"))
    await AuthenticatedTransport(backend).handle_async_request(_request())

    assert _sent_request(mock_transport_send).headers["Authorization"] == "Bearer abc"


@pytest.mark.parametrize("auth", [
    AuthConfig(type="none"),
    AuthConfig(type="none", username="admin", password="secret", token="abc"),
    AuthConfig(type="basic", username="admin"),
    AuthConfig(type="basic", password="secret"),
    AuthConfig(type="token"),
    AuthConfig(type="token", username="admin", password="secret"),
    AuthConfig(type="digest", username="admin", password="secret"),
])
def test_no_authorization_header_without_valid_fields(auth):
    """Missing fields or an unsupported type silently produce no header."""
    backend = BackendConfig(name="prom", url="http://prom:9090", auth=auth)

    assert "Authorization" not in AuthenticatedTransport(backend).prepare(_request()).headers


@pytest.mark.asyncio
async def test_tenant_override_wins_over_default(mock_transport_send):
    backend = BackendConfig(name="mimir", url="http://mimir", org_id="tenantA")
    await AuthenticatedTransport(backend).handle_async_request(_request(org_id="tenantB"))

    assert _sent_request(mock_transport_send).headers[ORG_ID_HEADER] == "tenantB"


def test_tenant_default_used_without_override():
    backend = BackendConfig(name="mimir", url="http://mimir", org_id="tenantA")

    assert AuthenticatedTransport(backend).prepare(_request(org_id="")).headers[ORG_ID_HEADER] == "tenantA"


def test_no_tenant_header_when_both_empty():
    backend = BackendConfig(name="prom", url="http://prom:9090")

    assert ORG_ID_HEADER not in AuthenticatedTransport(backend).prepare(_request()).headers


def test_org_id_extensions():
    assert org_id_extensions("tenantB") == {"prometheus_mcp_gateway.org_id": "tenantB"}
    assert org_id_extensions("") == {}
    assert org_id_extensions(None) == {}


@pytest.mark.asyncio
async def test_caller_request_is_not_mutated(mock_transport_send):
    """Headers are added to a clone; the caller's request keeps its original headers."""
    backend = BackendConfig(name="mimir", url="http://mimir", org_id="tenantA",
                            auth=AuthConfig(type="token", token="abc"))
    original = _request(headers={"Accept": "application/json"}, org_id="tenantB")
    before = dict(original.headers)

    await AuthenticatedTransport(backend).handle_async_request(original)

    sent = _sent_request(mock_transport_send)
    assert sent is not original
    assert dict(original.headers) == before
    assert ORG_ID_HEADER not in original.headers
    assert "Authorization" not in original.headers
    assert sent.headers["Accept"] == "application/json"
    assert sent.url == original.url


def test_request_extensions_are_kept():
    backend = BackendConfig(name="prom", url="http://prom:9090")
    request = httpx.Request("GET", "http://prom:9090/api/v1/query",
                            extensions={"timeout": {"read": 7.0}, **org_id_extensions("t1")})

    sent = AuthenticatedTransport(backend).prepare(request)

    assert sent.extensions["timeout"] == {"read": 7.0}


def test_custom_headers_are_applied():
    backend = BackendConfig(name="prom", url="http://prom:9090",
                            custom_headers=MappingProxyType({"X-Env": "prod"}))

    assert AuthenticatedTransport(backend).prepare(_request()).headers["X-Env"] == "prod"


def test_tenant_and_auth_override_custom_headers():
    backend = BackendConfig(name="mimir", url="http://mimir", org_id="tenantA",
                            auth=AuthConfig(type="token", token="abc"),
                            custom_headers=MappingProxyType({ORG_ID_HEADER: "other", "Authorization": "x"}))

    sent = AuthenticatedTransport(backend).prepare(_request())

    assert sent.headers[ORG_ID_HEADER] == "tenantA"
    assert sent.headers["Authorization"] == "Bearer abc"


@pytest.mark.asyncio
async def test_transports_do_not_share_headers(mock_transport_send):
    """Two backends on distinct transports never leak each other's credentials."""
    first = AuthenticatedTransport(BackendConfig(name="a", url="http://a", org_id="ta",
                                                 auth=AuthConfig(type="token", token="token-a")))
    second = AuthenticatedTransport(BackendConfig(name="b", url="http://b"))

    await first.handle_async_request(_request("http://a/api/v1/query"))
    await second.handle_async_request(_request("http://b/api/v1/query"))

    sent_a = mock_transport_send.call_args_list[0][0][0]
    sent_b = mock_transport_send.call_args_list[1][0][0]
    assert sent_a.headers["Authorization"] == "Bearer token-a"
    assert sent_a.headers[ORG_ID_HEADER] == "ta"
    assert "Authorization" not in sent_b.headers
    assert ORG_ID_HEADER not in sent_b.headers


@pytest.mark.parametrize("verify", [True, False])
def test_ssl_verify_flag_forwarded(verify):
    backend = BackendConfig(name="prom", url="https://prom:9090", url_ssl_verify=verify)

    with patch("httpx.AsyncHTTPTransport.__init__", return_value=None) as mock_init:
        AuthenticatedTransport(backend)

    assert mock_init.call_args[1]["verify"] is verify
