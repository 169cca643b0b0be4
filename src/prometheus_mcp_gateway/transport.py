#!/usr/bin/env python
"""Per-backend HTTP transport that injects tenant and auth headers."""

import base64
from typing import Optional

import httpx

from prometheus_mcp_gateway.config import AuthType, BackendConfig
from prometheus_mcp_gateway.logging_config import get_logger

ORG_ID_HEADER = "X-Scope-OrgId"

# Request extension carrying the per-call tenant override
ORG_ID_EXTENSION = "prometheus_mcp_gateway.org_id"

logger = get_logger()


def basic_auth_header(username: str, password: str) -> str:
    credentials = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def org_id_extensions(org_id: Optional[str]) -> dict:
    """Request extensions carrying the tenant override, if any."""
    return {ORG_ID_EXTENSION: org_id} if org_id else {}


class AuthenticatedTransport(httpx.AsyncHTTPTransport):
    """Async transport bound to exactly one backend.

    Every outgoing request is cloned before headers are added, so the
    request built by the caller is never modified. The tenant override
    travels on the request itself (see ``org_id_extensions``) and only
    applies to that request.
    """

    def __init__(self, backend: BackendConfig, **kwargs):
        self._backend = backend
        kwargs.setdefault("verify", backend.url_ssl_verify)
        super().__init__(**kwargs)

    @property
    def backend(self) -> BackendConfig:
        return self._backend

    def effective_org_id(self, org_id: Optional[str] = None) -> Optional[str]:
        """Per-call override first, then the backend default, else no tenant."""
        if org_id:
            return org_id
        if self._backend.org_id:
            return self._backend.org_id
        return None

    def authorization_header(self) -> Optional[str]:
        auth = self._backend.auth
        if auth.type == AuthType.BASIC.value and auth.username and auth.password:
            return basic_auth_header(auth.username, auth.password)
        if auth.type == AuthType.TOKEN.value and auth.token:
            return f"Bearer {auth.token}"
        return None

    def prepare(self, request: httpx.Request) -> httpx.Request:
        """Return a copy of ``request`` with custom, tenant and auth headers set."""
        headers = httpx.Headers(request.headers)

        for name, value in self._backend.custom_headers.items():
            headers[name] = value

        org_id = request.extensions.get(ORG_ID_EXTENSION)
        tenant = self.effective_org_id(org_id)
        if tenant:
            headers[ORG_ID_HEADER] = tenant
            logger.debug("Tenant header set", backend=self._backend.name, org_id=tenant,
                         source="override" if org_id else "backend default")
        else:
            logger.debug("No tenant header", backend=self._backend.name)

        authorization = self.authorization_header()
        if authorization:
            headers["Authorization"] = authorization
            logger.debug("Authorization header set", backend=self._backend.name, auth_type=self._backend.auth.type)
        else:
            logger.debug("No authorization header", backend=self._backend.name, auth_type=self._backend.auth.type)

        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            stream=request.stream,
            extensions=request.extensions,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await super().handle_async_request(self.prepare(request))
