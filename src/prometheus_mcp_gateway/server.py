#!/usr/bin/env python

import os
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional
from urllib.parse import urlencode

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_headers
from pydantic import Field

from prometheus_mcp_gateway import __version__
from prometheus_mcp_gateway.catalog import MetricsCatalog
from prometheus_mcp_gateway.config import GatewayConfig
from prometheus_mcp_gateway.errors import GatewayError
from prometheus_mcp_gateway.logging_config import get_logger
from prometheus_mcp_gateway.registry import BackendRegistry
from prometheus_mcp_gateway.router import QueryRouter
from prometheus_mcp_gateway.timeutils import (
    format_duration,
    format_rfc3339,
    parse_optional_time,
    parse_rfc3339,
    parse_step,
)

logger = get_logger()

READ_ONLY_HINTS = {
    "readOnlyHint": True,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": True,
}


def _annotations(title: str) -> Dict[str, Any]:
    return {"title": title, **READ_ONLY_HINTS}


def backend_description(names: List[str]) -> str:
    desc = f"Backend to query. Available: [{', '.join(names)}]."
    if len(names) == 1:
        desc += f" Defaults to '{names[0]}' if not specified."
    return desc


def org_id_description(registry: BackendRegistry) -> str:
    """Describe the tenant override, advertising the first configured default and tenant list."""
    desc = "Optional tenant ID for multi-tenant Prometheus/Mimir (X-Scope-OrgId header)."
    configs = [registry.configs[name] for name in registry.configured_names()]
    for backend in configs:
        if backend.org_id:
            desc += f" Default: '{backend.org_id}'."
            break
    for backend in configs:
        if backend.available_orgs:
            desc += f" Available tenants: [{', '.join(backend.available_orgs)}]."
            break
    return desc


def _ui_links(base_url: str, params: Dict[str, str]) -> List[Dict[str, str]]:
    return [{
        "href": f"{base_url.rstrip('/')}/graph?{urlencode(params)}",
        "rel": "prometheus-ui",
        "title": "View in Prometheus UI",
    }]


def _shape_result(backend: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    data = data or {}
    return {
        "backend": backend,
        "resultType": data.get("resultType"),
        "result": data.get("result", []),
    }


def build_server(config: GatewayConfig, registry: BackendRegistry,
                 catalog: Optional[MetricsCatalog] = None,
                 tool_prefix: Optional[str] = None) -> FastMCP:
    """Create the MCP server exposing the gateway's tools."""
    router = QueryRouter(registry)
    catalog = catalog or MetricsCatalog()
    prefix = os.environ.get("TOOL_PREFIX", "") if tool_prefix is None else tool_prefix

    def _tool_name(name: str) -> str:
        """Build tool name with optional prefix."""
        return f"{prefix}_{name}" if prefix else name

    mcp_name = f"{config.server.name} ({prefix})" if prefix else config.server.name
    mcp = FastMCP(mcp_name)

    BackendArg = Annotated[Optional[str], Field(description=backend_description(router.backend_names()))]
    OrgIdArg = Annotated[Optional[str], Field(description=org_id_description(registry))]

    def _link_base(backend: str) -> Optional[str]:
        if config.server.disable_links:
            return None
        backend_config = registry.get_config(backend)
        return backend_config.url if backend_config and backend_config.url else None

    @mcp.tool(
        name=_tool_name("prometheus_query"),
        description="Execute a PromQL instant query against a metrics backend",
        annotations=_annotations("Execute PromQL Query"),
    )
    async def prometheus_query(
        query: Annotated[str, Field(description="The PromQL query to execute")],
        time: Annotated[Optional[str], Field(description="Timestamp for the query (RFC3339 format). If not provided, uses current time")] = None,
        backend: BackendArg = None,
        org_id: OrgIdArg = None,
    ) -> Dict[str, Any]:
        """Execute an instant query against the resolved backend."""
        try:
            name = router.resolve_backend(backend)
            router.warn_if_tenant_ignored(name, org_id)
            timestamp = parse_optional_time(time)
            data = await router.query(name, query, timestamp, org_id=org_id)
        except GatewayError as e:
            raise ToolError(str(e)) from e

        result = _shape_result(name, data)
        result["query"] = query
        result["time"] = format_rfc3339(timestamp)

        base_url = _link_base(name)
        if base_url:
            ui_params = {"g0.expr": query, "g0.tab": "0"}
            if time:
                ui_params["g0.moment_input"] = time
            result["links"] = _ui_links(base_url, ui_params)
        return result

    @mcp.tool(
        name=_tool_name("prometheus_range_query"),
        description="Execute a PromQL range query with start time, end time, and step interval against a metrics backend",
        annotations=_annotations("Execute PromQL Range Query"),
    )
    async def prometheus_range_query(
        query: Annotated[str, Field(description="The PromQL query to execute")],
        start: Annotated[str, Field(description="Start time for the range query (RFC3339 format)")],
        end: Annotated[str, Field(description="End time for the range query (RFC3339 format)")],
        step: Annotated[Optional[str], Field(description="Step duration for the range query (e.g., '30s', '1m', '5m'). Defaults to '1m'")] = None,
        backend: BackendArg = None,
        org_id: OrgIdArg = None,
    ) -> Dict[str, Any]:
        """Execute a range query against the resolved backend."""
        try:
            name = router.resolve_backend(backend)
            router.warn_if_tenant_ignored(name, org_id)
            start_time = parse_rfc3339(start, "start")
            end_time = parse_rfc3339(end, "end")
            step_value = parse_step(step)
            data = await router.query_range(name, query, start_time, end_time, step_value, org_id=org_id)
        except GatewayError as e:
            raise ToolError(str(e)) from e

        result = _shape_result(name, data)
        result.update({
            "query": query,
            "start": format_rfc3339(start_time),
            "end": format_rfc3339(end_time),
            "step": format_duration(step_value),
        })

        base_url = _link_base(name)
        if base_url:
            result["links"] = _ui_links(base_url, {
                "g0.expr": query,
                "g0.tab": "0",
                "g0.range_input": f"{start} to {end}",
                "g0.step_input": format_duration(step_value),
            })
        return result

    @mcp.tool(
        name=_tool_name("prometheus_list_metrics"),
        description="List available metric names from a metrics backend with glob filtering and pagination",
        annotations=_annotations("List Available Metrics"),
    )
    async def prometheus_list_metrics(
        query: Annotated[Optional[str], Field(description="Optional glob pattern to filter metrics (e.g., 'redis*', '*cpu*')")] = None,
        backend: BackendArg = None,
        org_id: OrgIdArg = None,
        limit: Annotated[Optional[int], Field(description="Maximum number of metrics to return. Defaults to 100.")] = None,
        offset: Annotated[Optional[int], Field(description="Number of metrics to skip for pagination. Defaults to 0.")] = None,
    ) -> Dict[str, Any]:
        """List metric names seen by the backend during the last hour."""
        try:
            name = router.resolve_backend(backend)
            router.warn_if_tenant_ignored(name, org_id)
            client = router.client_for(name)
            page = await catalog.list(client, query or "", limit or 0, offset or 0, org_id=org_id)
        except GatewayError as e:
            raise ToolError(str(e)) from e

        result = page.to_dict()
        result["backend"] = name
        return result

    @mcp.tool(
        name=_tool_name("list_backends"),
        description="List configured metrics backends and their tenant settings",
        annotations=_annotations("List Backends"),
    )
    async def list_backends(include_urls: bool = False) -> Dict[str, Any]:
        """List configured backends.

        Args:
            include_urls: Include backend URLs in the response (default: False)

        Returns:
            Dictionary containing:
            - backends: List of backend summaries (name, available, auth_type, has_auth, org_id, available_orgs, url?)
            - default_backend: Backend used when none is named (only with a single backend)
        """
        backends = []
        for name in registry.configured_names():
            backend = registry.configs[name]
            auth = backend.auth
            summary = {
                "name": name,
                "available": name in registry,
                "auth_type": auth.type,
                "has_auth": bool(auth.token) or bool(auth.username and auth.password),
                "org_id": backend.org_id or None,
                "available_orgs": list(backend.available_orgs),
            }
            if include_urls:
                summary["url"] = backend.url
            backends.append(summary)

        names = registry.configured_names()
        return {
            "backends": backends,
            "default_backend": names[0] if len(names) == 1 else None,
        }

    # Health check tool for Docker containers and monitoring
    @mcp.tool(
        name=_tool_name("health_check"),
        description="Health check endpoint for container monitoring and status verification",
        annotations=_annotations("Health Check"),
    )
    async def health_check() -> Dict[str, Any]:
        """Return health status of the gateway and connectivity of each backend."""
        health_status = {
            "status": "healthy",
            "service": "prometheus-mcp-gateway",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "transport": config.server.transport.mcp_server_transport,
            "configuration": {
                "backends_configured": len(registry.configs),
                "backends_available": len(registry),
                "jwt_enabled": config.jwt.enabled,
            },
            "backends": {},
        }

        if not registry.configs:
            health_status["status"] = "unhealthy"
            health_status["error"] = "no backends configured"
            return health_status

        now = datetime.now(timezone.utc)
        healthy = 0
        for name in registry.configured_names():
            if name not in registry:
                health_status["backends"][name] = {"status": "unavailable", "error": "client not initialized"}
                continue
            try:
                await router.query(name, "up", now)
                health_status["backends"][name] = {"status": "healthy"}
                healthy += 1
            except GatewayError as e:
                health_status["backends"][name] = {"status": "unhealthy", "error": str(e)}

        if healthy == 0:
            health_status["status"] = "unhealthy"
        elif healthy < len(registry.configs):
            health_status["status"] = "degraded"

        logger.info("Health check completed", status=health_status["status"],
                    healthy_backends=healthy, configured_backends=len(registry.configs))
        return health_status

    @mcp.tool(
        name=_tool_name("whoami"),
        description="Show the validated JWT forwarded by the authentication middleware, if any",
        annotations=_annotations("Who Am I"),
    )
    async def whoami() -> Dict[str, Any]:
        """Return the forwarded JWT so the caller can decode its claims."""
        header = config.jwt.validation.forwarded_header
        token = ""
        if header:
            token = get_http_headers(include_all=True).get(header.lower(), "")

        if not token:
            return {
                "authenticated": False,
                "message": "JWT is empty. Information is not available",
            }
        return {
            "authenticated": True,
            "message": "Data are in the following JWT. You have to decode it first",
            "jwt": token,
        }

    return mcp
