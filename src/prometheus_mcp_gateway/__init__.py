"""Prometheus MCP Gateway - MCP tools over multiple Prometheus-compatible backends."""

__version__ = "0.1.0"
