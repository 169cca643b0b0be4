#!/usr/bin/env python
import argparse
import sys

import dotenv

from prometheus_mcp_gateway.config import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    GatewayConfig,
    TransportType,
    load_config,
)
from prometheus_mcp_gateway.errors import ConfigurationError
from prometheus_mcp_gateway.logging_config import get_logger, setup_logging
from prometheus_mcp_gateway.registry import BackendRegistry
from prometheus_mcp_gateway.server import build_server

logger = get_logger()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Prometheus MCP Gateway")
    parser.add_argument(
        "--config",
        default=None,
        help=f"path to the config file (default: ${CONFIG_PATH_ENV} or {DEFAULT_CONFIG_PATH})",
    )
    return parser.parse_args(argv)


def setup_environment(config_path=None):
    """Load .env and the configuration file; return the config or None on failure."""
    if dotenv.load_dotenv():
        logger.info("Environment configuration loaded", source=".env file")
    else:
        logger.info("Environment configuration loaded", source="environment variables", note="No .env file found")

    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        logger.error(
            "Invalid configuration",
            error=str(exc),
            suggestion=f"Fix the configuration file or set {CONFIG_PATH_ENV} and restart",
        )
        return None

    if not config.backends:
        logger.error(
            "Missing required configuration",
            error="No backends configured",
            suggestion="Add at least one entry under 'backends' with a 'url'",
            example="http://your-prometheus-server:9090",
        )
        return None

    for name in sorted(config.backends):
        backend = config.backends[name]
        logger.info(
            "Backend configuration validated",
            backend=name,
            server_url=backend.url or None,
            authentication=backend.auth.type,
            org_id=backend.org_id or None,
            available_orgs=list(backend.available_orgs) or None,
        )

    return config


def build_registry(config: GatewayConfig) -> BackendRegistry:
    """Build every backend client; zero usable backends is fatal."""
    registry = BackendRegistry.from_config(config.backends)
    if len(registry) == 0:
        raise ConfigurationError("no usable backends: every backend lacked a URL or failed to initialize")
    return registry


def run_server(argv=None):
    """Main entry point for the Prometheus MCP Gateway"""
    setup_logging()
    args = parse_args(argv)

    config = setup_environment(args.config)
    if config is None:
        logger.error("Environment setup failed, exiting")
        sys.exit(1)

    try:
        registry = build_registry(config)
    except ConfigurationError as exc:
        logger.error("Backend initialization failed, exiting", error=str(exc))
        sys.exit(1)

    mcp = build_server(config, registry)
    mcp_config = config.server.transport
    transport = mcp_config.mcp_server_transport

    http_transports = [TransportType.HTTP.value, TransportType.SSE.value]
    if transport in http_transports:
        logger.info("Starting Prometheus MCP Gateway",
                    transport=transport,
                    host=mcp_config.mcp_bind_host,
                    port=mcp_config.mcp_bind_port,
                    backends=registry.names())
        mcp.run(transport=transport, host=mcp_config.mcp_bind_host, port=mcp_config.mcp_bind_port)
    else:
        logger.info("Starting Prometheus MCP Gateway", transport=transport, backends=registry.names())
        mcp.run(transport=transport)


if __name__ == "__main__":
    run_server()
