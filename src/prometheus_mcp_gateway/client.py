#!/usr/bin/env python
"""Async HTTP client for a single Prometheus-compatible backend."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from prometheus_mcp_gateway.config import BackendConfig
from prometheus_mcp_gateway.errors import BackendAPIError
from prometheus_mcp_gateway.logging_config import get_logger
from prometheus_mcp_gateway.timeutils import format_step, format_timestamp
from prometheus_mcp_gateway.transport import AuthenticatedTransport, org_id_extensions

# Request timeout in seconds when the backend does not configure one
DEFAULT_REQUEST_TIMEOUT = 30

# Failures of the backend call itself, as opposed to programming errors
BACKEND_FAILURES = (httpx.HTTPError, BackendAPIError)

logger = get_logger()


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime
    step: timedelta


def validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"unsupported URL scheme in {url!r}, expected http or https")
    if not parsed.netloc:
        raise ValueError(f"missing host in URL {url!r}")
    return url.rstrip("/")


class PrometheusClient:
    """Client for the Prometheus HTTP API of one backend.

    Each instance owns its ``httpx.AsyncClient`` and its
    AuthenticatedTransport; nothing is shared between backends. Cancelling
    the task awaiting a call aborts the in-flight request.
    """

    def __init__(self, backend: BackendConfig, transport: Optional[AuthenticatedTransport] = None,
                 pool_maxsize: int = 10):
        self.base_url = validate_url(backend.url)
        if backend.timeout is not None and backend.timeout.total_seconds() <= 0:
            raise ValueError(f"timeout must be positive, got {backend.timeout}")

        self.backend = backend
        self.timeout = backend.timeout_seconds or DEFAULT_REQUEST_TIMEOUT
        self.transport = transport or AuthenticatedTransport(
            backend, limits=httpx.Limits(max_connections=pool_maxsize, max_keepalive_connections=pool_maxsize)
        )
        self._client = httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

        if not backend.url_ssl_verify:
            logger.warning("SSL certificate verification is disabled. This is insecure and should not be used in production environments.",
                           backend=backend.name)

    @property
    def name(self) -> str:
        return self.backend.name

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                       org_id: Optional[str] = None) -> Tuple[Any, List[str]]:
        """Call /api/v1/<endpoint> and return (data, warnings)."""
        url = f"{self.base_url}/api/v1/{endpoint}"
        request = self._client.build_request("GET", url, params=params, extensions=org_id_extensions(org_id))

        logger.debug("Making Prometheus API request", backend=self.name, endpoint=endpoint,
                     params=params, timeout=self.timeout)
        response = await self._client.send(request)

        try:
            payload = response.json()
        except ValueError:
            # Non-JSON bodies: surface HTTP errors first, otherwise the body is unusable
            response.raise_for_status()
            raise BackendAPIError("invalid JSON response from backend", status_code=response.status_code)

        if not isinstance(payload, dict) or payload.get("status") != "success":
            if not isinstance(payload, dict):
                response.raise_for_status()
                raise BackendAPIError("unexpected response shape from backend", status_code=response.status_code)
            raise BackendAPIError(
                payload.get("error") or f"HTTP {response.status_code}",
                error_type=payload.get("errorType"),
                status_code=response.status_code,
            )

        logger.debug("Prometheus API request successful", backend=self.name, endpoint=endpoint)
        return payload.get("data"), list(payload.get("warnings") or [])

    async def query(self, expr: str, at: datetime,
                    org_id: Optional[str] = None) -> Tuple[Dict[str, Any], List[str]]:
        """Instant query evaluated at one timestamp."""
        params = {"query": expr, "time": format_timestamp(at)}
        return await self._request("query", params=params, org_id=org_id)

    async def query_range(self, expr: str, time_range: TimeRange,
                          org_id: Optional[str] = None) -> Tuple[Dict[str, Any], List[str]]:
        """Range query evaluated over [start, end] at a fixed step."""
        params = {
            "query": expr,
            "start": format_timestamp(time_range.start),
            "end": format_timestamp(time_range.end),
            "step": format_step(time_range.step),
        }
        return await self._request("query_range", params=params, org_id=org_id)

    async def label_values(self, label: str, start: datetime, end: datetime,
                           org_id: Optional[str] = None) -> Tuple[List[str], List[str]]:
        """Distinct values of one label seen between start and end."""
        params = {"start": format_timestamp(start), "end": format_timestamp(end)}
        data, warnings = await self._request(f"label/{label}/values", params=params, org_id=org_id)
        return list(data or []), warnings
