#!/usr/bin/env python
"""Registry of ready-to-use backend clients, built once at startup."""

from types import MappingProxyType
from typing import Callable, List, Mapping, Optional

from prometheus_mcp_gateway.client import PrometheusClient
from prometheus_mcp_gateway.config import BackendConfig
from prometheus_mcp_gateway.errors import ClientUnavailable
from prometheus_mcp_gateway.logging_config import get_logger
from prometheus_mcp_gateway.transport import AuthenticatedTransport

logger = get_logger()

ClientFactory = Callable[[BackendConfig, AuthenticatedTransport], PrometheusClient]


class BackendRegistry:
    """Read-only lookup of backend clients by name.

    ``configs`` holds every configured backend, ``clients`` only those that
    had a URL and were built successfully. Neither changes after construction.
    """

    def __init__(self, configs: Mapping[str, BackendConfig], clients: Mapping[str, PrometheusClient]):
        self._configs = MappingProxyType(dict(configs))
        self._clients = MappingProxyType(dict(clients))

    @classmethod
    def from_config(cls, backends: Mapping[str, BackendConfig],
                    client_factory: Optional[ClientFactory] = None) -> "BackendRegistry":
        """Build one client per backend; a bad backend is skipped, never fatal."""
        factory = client_factory or PrometheusClient
        clients = {}
        for name, backend in backends.items():
            if not backend.url:
                logger.warning("Backend has no URL configured, skipping", backend=name)
                continue

            snapshot = backend.snapshot()
            try:
                transport = AuthenticatedTransport(snapshot)
                clients[name] = factory(snapshot, transport)
            except Exception as e:
                logger.error("Failed to create backend client, skipping", backend=name,
                             url=backend.url, error=str(e), error_type=type(e).__name__)
                continue

            logger.info("Backend client initialized", backend=name, url=snapshot.url,
                        auth_type=snapshot.auth.type, org_id=snapshot.org_id or None)

        logger.info("Backend registry ready", configured=len(backends), available=len(clients),
                    backends=sorted(clients))
        return cls(backends, clients)

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    @property
    def configs(self) -> Mapping[str, BackendConfig]:
        return self._configs

    @property
    def clients(self) -> Mapping[str, PrometheusClient]:
        return self._clients

    def names(self) -> List[str]:
        """Sorted names of backends with a usable client."""
        return sorted(self._clients)

    def configured_names(self) -> List[str]:
        """Sorted names of every configured backend, usable or not."""
        return sorted(self._configs)

    def get_config(self, name: str) -> Optional[BackendConfig]:
        return self._configs.get(name)

    def get_client(self, name: str) -> PrometheusClient:
        client = self._clients.get(name)
        if client is not None:
            return client
        if name not in self._configs:
            raise ClientUnavailable(name, "backend is not configured")
        if not self._configs[name].url:
            raise ClientUnavailable(name, "no URL configured")
        raise ClientUnavailable(name, "client construction failed at startup")
