"""Shared fixtures for the gateway tests."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from prometheus_mcp_gateway.config import AuthConfig, BackendConfig


def make_response(payload, status_code=200):
    """Build a real httpx.Response carrying a JSON (or raw bytes) body."""
    if isinstance(payload, bytes):
        return httpx.Response(status_code, content=payload)
    return httpx.Response(status_code, json=payload)


def success(data, warnings=None):
    payload = {"status": "success", "data": data}
    if warnings:
        payload["warnings"] = warnings
    return payload


@pytest.fixture
def mock_transport_send():
    """Stub the network below AuthenticatedTransport; header injection still runs."""
    with patch("httpx.AsyncHTTPTransport.handle_async_request", new_callable=AsyncMock) as mock:
        mock.side_effect = lambda request: make_response(success({"resultType": "vector", "result": []}))
        yield mock


@pytest.fixture
def prom_config():
    return BackendConfig(
        name="prom",
        url="http://prom:9090",
        auth=AuthConfig(type="basic", username="admin", password="secret"),
        timeout=timedelta(seconds=5),
    )


@pytest.fixture
def mimir_config():
    return BackendConfig(
        name="mimir",
        url="https://mimir.example.com/prometheus",
        auth=AuthConfig(type="token", token="abc"),
        org_id="tenantA",
        available_orgs=("tenantA", "tenantB"),
    )


@pytest.fixture
def mock_client():
    """A stand-in PrometheusClient for router and catalog tests."""
    def _make(name="prom"):
        client = MagicMock()
        client.name = name
        client.query = AsyncMock(return_value=({"resultType": "vector", "result": []}, []))
        client.query_range = AsyncMock(return_value=({"resultType": "matrix", "result": []}, []))
        client.label_values = AsyncMock(return_value=([], []))
        return client
    return _make
