#!/usr/bin/env python
"""Configuration model for the gateway and its metrics backends."""

import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from prometheus_mcp_gateway.errors import ConfigurationError, InvalidArgument
from prometheus_mcp_gateway.timeutils import parse_duration

CONFIG_PATH_ENV = "PROMETHEUS_MCP_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


class TransportType(str, Enum):
    """Supported MCP server transport types."""

    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"

    @classmethod
    def values(cls) -> list[str]:
        """Get all valid transport values."""
        return [transport.value for transport in cls]


class AuthType(str, Enum):
    NONE = "none"
    BASIC = "basic"
    TOKEN = "token"


@dataclass(frozen=True)
class AuthConfig:
    type: str = AuthType.NONE.value
    username: str = ""
    password: str = ""
    token: str = ""


@dataclass(frozen=True)
class BackendConfig:
    """Static description of one Prometheus-compatible backend."""

    name: str
    url: str = ""
    auth: AuthConfig = field(default_factory=AuthConfig)
    # Default tenant, sent as X-Scope-OrgId unless a call overrides it
    org_id: str = ""
    available_orgs: Tuple[str, ...] = ()
    timeout: Optional[timedelta] = None
    url_ssl_verify: bool = True
    custom_headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def timeout_seconds(self) -> Optional[float]:
        if self.timeout is None:
            return None
        return self.timeout.total_seconds()

    @property
    def is_multi_tenant(self) -> bool:
        return bool(self.org_id or self.available_orgs)

    def snapshot(self) -> "BackendConfig":
        """Return a private copy sharing no mutable state with this config."""
        return replace(
            self,
            auth=replace(self.auth),
            available_orgs=tuple(self.available_orgs),
            custom_headers=MappingProxyType(dict(self.custom_headers)),
        )


@dataclass
class MCPServerConfig:
    """Global Configuration for MCP."""
    mcp_server_transport: TransportType = None
    mcp_bind_host: str = None
    mcp_bind_port: int = None

    def __post_init__(self):
        """Validate mcp configuration."""
        if not self.mcp_server_transport:
            raise ValueError("MCP SERVER TRANSPORT is required")
        if not self.mcp_bind_host:
            raise ValueError("MCP BIND HOST is required")
        if not self.mcp_bind_port:
            raise ValueError("MCP BIND PORT is required")


@dataclass(frozen=True)
class JWTAllowCondition:
    expression: str


@dataclass(frozen=True)
class JWTLocalValidationConfig:
    jwks_uri: str = ""
    cache_interval: Optional[timedelta] = None
    allow_conditions: Tuple[JWTAllowCondition, ...] = ()


@dataclass(frozen=True)
class JWTValidationConfig:
    # "local" validates against a JWKS; "external" trusts an upstream proxy
    strategy: str = "local"
    forwarded_header: str = ""
    local: JWTLocalValidationConfig = field(default_factory=JWTLocalValidationConfig)


@dataclass(frozen=True)
class JWTConfig:
    """Shape of the inbound token-validation middleware settings.

    Validation itself happens outside the gateway; only the forwarded header
    name is consumed here (by the whoami tool).
    """

    enabled: bool = False
    validation: JWTValidationConfig = field(default_factory=JWTValidationConfig)


@dataclass
class ServerConfig:
    name: str = "Prometheus MCP Gateway"
    version: str = "0.1.0"
    disable_links: bool = False
    transport: MCPServerConfig = field(
        default_factory=lambda: MCPServerConfig(
            mcp_server_transport=TransportType.STDIO.value,
            mcp_bind_host="127.0.0.1",
            mcp_bind_port=8080,
        )
    )


@dataclass
class GatewayConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    jwt: JWTConfig = field(default_factory=JWTConfig)
    backends: Dict[str, BackendConfig] = field(default_factory=dict)


def expand_env(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Expand ${VAR} and $VAR references. Unset variables become empty strings."""
    env = os.environ if environ is None else environ

    def _substitute(match):
        return env.get(match.group(1) or match.group(2), "")

    return _ENV_REFERENCE.sub(_substitute, text)


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return default


def _as_mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{where} must be a mapping")
    return value


def _parse_timeout(value: Any, where: str) -> Optional[timedelta]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    try:
        return parse_duration(str(value))
    except InvalidArgument as exc:
        raise ConfigurationError(f"{where}: {exc}") from exc


def parse_auth(data: Any, where: str) -> AuthConfig:
    data = _as_mapping(data, where)
    return AuthConfig(
        type=str(data.get("type") or AuthType.NONE.value).lower(),
        username=str(data.get("username") or ""),
        password=str(data.get("password") or ""),
        token=str(data.get("token") or ""),
    )


def parse_backend(name: str, data: Any) -> BackendConfig:
    where = f"backends.{name}"
    data = _as_mapping(data, where)

    available = data.get("available_orgs") or []
    if isinstance(available, str):
        available = [available]
    if not isinstance(available, list):
        raise ConfigurationError(f"{where}.available_orgs must be a list")

    headers = _as_mapping(data.get("custom_headers"), f"{where}.custom_headers")

    return BackendConfig(
        name=name,
        url=str(data.get("url") or "").strip(),
        auth=parse_auth(data.get("auth"), f"{where}.auth"),
        org_id=str(data.get("org_id") or ""),
        available_orgs=tuple(str(org) for org in available),
        timeout=_parse_timeout(data.get("timeout"), f"{where}.timeout"),
        url_ssl_verify=_parse_bool(data.get("url_ssl_verify"), True),
        custom_headers=MappingProxyType({str(k): str(v) for k, v in headers.items()}),
    )


def _parse_server(data: Any, environ: Mapping[str, str]) -> ServerConfig:
    data = _as_mapping(data, "server")
    transport = _as_mapping(data.get("transport"), "server.transport")
    http = _as_mapping(transport.get("http"), "server.transport.http")

    address = str(http.get("host") or "127.0.0.1:8080")
    if ":" in address:
        bind_host, _, bind_port = address.rpartition(":")
    else:
        bind_host, bind_port = address, ""
    transport_type = environ.get("PROMETHEUS_MCP_SERVER_TRANSPORT") or transport.get("type") or TransportType.STDIO.value
    bind_host = environ.get("PROMETHEUS_MCP_BIND_HOST") or bind_host or "127.0.0.1"
    bind_port = environ.get("PROMETHEUS_MCP_BIND_PORT") or bind_port or "8080"

    transport_type = str(transport_type).lower()
    if transport_type not in TransportType.values():
        raise ConfigurationError(
            f"invalid transport {transport_type!r}, expected one of: {', '.join(TransportType.values())}"
        )
    try:
        port = int(bind_port)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid bind port {bind_port!r}") from exc

    defaults = ServerConfig()
    return ServerConfig(
        name=str(data.get("name") or defaults.name),
        version=str(data.get("version") or defaults.version),
        disable_links=_parse_bool(data.get("disable_links"), False),
        transport=MCPServerConfig(
            mcp_server_transport=transport_type,
            mcp_bind_host=bind_host,
            mcp_bind_port=port,
        ),
    )


def _parse_jwt(data: Any) -> JWTConfig:
    data = _as_mapping(data, "middleware.jwt")
    validation = _as_mapping(data.get("validation"), "middleware.jwt.validation")
    local = _as_mapping(validation.get("local"), "middleware.jwt.validation.local")

    strategy = str(validation.get("strategy") or "local").lower()
    if strategy not in ("local", "external"):
        raise ConfigurationError(f"invalid JWT validation strategy {strategy!r}")

    conditions = []
    for idx, entry in enumerate(local.get("allow_conditions") or []):
        entry = _as_mapping(entry, f"middleware.jwt.validation.local.allow_conditions[{idx}]")
        conditions.append(JWTAllowCondition(expression=str(entry.get("expression") or "")))

    return JWTConfig(
        enabled=_parse_bool(data.get("enabled"), False),
        validation=JWTValidationConfig(
            strategy=strategy,
            forwarded_header=str(validation.get("forwarded_header") or ""),
            local=JWTLocalValidationConfig(
                jwks_uri=str(local.get("jwks_uri") or ""),
                cache_interval=_parse_timeout(local.get("cache_interval"), "middleware.jwt.validation.local.cache_interval"),
                allow_conditions=tuple(conditions),
            ),
        ),
    )


def parse_config(data: Any, environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Build a GatewayConfig from an already-decoded YAML document."""
    env = os.environ if environ is None else environ
    data = _as_mapping(data, "configuration")
    middleware = _as_mapping(data.get("middleware"), "middleware")
    backends = _as_mapping(data.get("backends"), "backends")

    return GatewayConfig(
        server=_parse_server(data.get("server"), env),
        jwt=_parse_jwt(middleware.get("jwt")),
        backends={str(name): parse_backend(str(name), entry) for name, entry in backends.items()},
    )


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Read a YAML configuration file, expanding environment variables first."""
    env = os.environ if environ is None else environ
    path = path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration file {path}: {exc}") from exc

    try:
        data = yaml.safe_load(expand_env(raw, env)) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc

    return parse_config(data, env)
