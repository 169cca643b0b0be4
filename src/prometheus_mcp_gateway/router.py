#!/usr/bin/env python
"""Backend resolution and query execution."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from prometheus_mcp_gateway.client import BACKEND_FAILURES, PrometheusClient, TimeRange
from prometheus_mcp_gateway.errors import (
    BackendRequired,
    ConfigurationError,
    InvalidArgument,
    QueryExecutionError,
    UnknownBackend,
)
from prometheus_mcp_gateway.logging_config import get_logger
from prometheus_mcp_gateway.registry import BackendRegistry

logger = get_logger()


class QueryRouter:
    """Routes calls to the backend they target.

    The tenant override is an explicit ``org_id`` argument passed down to the
    transport for the one call it belongs to.
    """

    def __init__(self, registry: BackendRegistry):
        self.registry = registry

    def backend_names(self) -> List[str]:
        return self.registry.configured_names()

    def resolve_backend(self, backend: Optional[str] = None) -> str:
        """Resolve the optional backend argument to a configured backend name."""
        names = self.backend_names()
        if not names:
            raise ConfigurationError("no backends configured")
        if not backend:
            if len(names) == 1:
                return names[0]
            raise BackendRequired()
        if backend not in names:
            raise UnknownBackend(backend, names)
        return backend

    def client_for(self, backend: str) -> PrometheusClient:
        return self.registry.get_client(backend)

    def warn_if_tenant_ignored(self, backend: str, org_id: Optional[str]) -> None:
        """Log when a tenant override goes to a backend without tenant configuration."""
        if not org_id:
            return
        config = self.registry.get_config(backend)
        if config is None:
            return
        if not config.is_multi_tenant:
            logger.warning("org_id provided but backend has no multi-tenant configuration, header will be sent but may be ignored",
                           backend=backend, org_id=org_id)

    async def query(self, backend: str, expr: str, timestamp: datetime,
                    org_id: Optional[str] = None) -> Dict[str, Any]:
        """Run an instant query and return the backend's data object."""
        if not expr:
            raise InvalidArgument("query parameter is required")
        client = self.client_for(backend)

        logger.info("Executing instant query", backend=backend, query=expr,
                    time=timestamp.isoformat(), org_id=org_id or None)
        try:
            data, warnings = await client.query(expr, timestamp, org_id=org_id or None)
        except asyncio.CancelledError:
            logger.info("Instant query cancelled", backend=backend, query=expr)
            raise
        except BACKEND_FAILURES as e:
            logger.error("Instant query failed", backend=backend, query=expr, error=str(e),
                         error_type=type(e).__name__)
            raise QueryExecutionError(backend, str(e), operation="query") from e

        self._log_warnings(backend, "query", warnings)
        logger.info("Instant query completed", backend=backend, query=expr,
                    result_type=(data or {}).get("resultType"))
        return data

    async def query_range(self, backend: str, expr: str, start: datetime, end: datetime,
                          step: timedelta, org_id: Optional[str] = None) -> Dict[str, Any]:
        """Run a range query over [start, end].

        end >= start is not checked here; the backend decides.
        """
        if not expr:
            raise InvalidArgument("query parameter is required")
        client = self.client_for(backend)
        time_range = TimeRange(start=start, end=end, step=step)

        logger.info("Executing range query", backend=backend, query=expr, start=start.isoformat(),
                    end=end.isoformat(), step=step.total_seconds(), org_id=org_id or None)
        try:
            data, warnings = await client.query_range(expr, time_range, org_id=org_id or None)
        except asyncio.CancelledError:
            logger.info("Range query cancelled", backend=backend, query=expr)
            raise
        except BACKEND_FAILURES as e:
            logger.error("Range query failed", backend=backend, query=expr, error=str(e),
                         error_type=type(e).__name__)
            raise QueryExecutionError(backend, str(e), operation="range query") from e

        self._log_warnings(backend, "range query", warnings)
        logger.info("Range query completed", backend=backend, query=expr,
                    result_type=(data or {}).get("resultType"))
        return data

    @staticmethod
    def _log_warnings(backend: str, operation: str, warnings: List[str]) -> None:
        if warnings:
            logger.warning("Backend returned warnings", backend=backend, operation=operation, warnings=warnings)
