"""Tests for metric listing, glob filtering and pagination."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from prometheus_mcp_gateway.catalog import (
    DEFAULT_METRICS_LIMIT,
    METRIC_NAME_LABEL,
    MetricsCatalog,
    compile_glob,
)
from prometheus_mcp_gateway.errors import InvalidPattern, QueryExecutionError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog():
    return MetricsCatalog(clock=lambda: NOW)


@pytest.fixture
def client_with(mock_client):
    def _make(names, warnings=None):
        client = mock_client()
        client.label_values.return_value = (list(names), warnings or [])
        return client
    return _make


@pytest.mark.asyncio
async def test_glob_filter_with_pagination(catalog, client_with):
    page = await catalog.list(client_with(["cpu", "memory", "disk_cpu"]), "*cpu*", limit=1, offset=0)

    assert page.total_count == 2
    assert page.returned_count == 1
    assert page.has_more is True
    assert page.metrics == ["cpu"]


@pytest.mark.asyncio
async def test_offset_past_end(catalog, client_with):
    page = await catalog.list(client_with(["a", "b", "c"]), limit=10, offset=5)

    assert page.total_count == 3
    assert page.returned_count == 0
    assert page.has_more is False
    assert page.metrics == []


@pytest.mark.asyncio
async def test_defaults_and_clamping(catalog, client_with):
    names = [f"metric_{i}" for i in range(150)]
    page = await catalog.list(client_with(names), limit=0, offset=-5)

    assert page.limit == DEFAULT_METRICS_LIMIT
    assert page.offset == 0
    assert page.returned_count == 100
    assert page.has_more is True
    assert page.metrics == names[:100]


@pytest.mark.asyncio
async def test_backend_order_preserved(catalog, client_with):
    page = await catalog.list(client_with(["zeta", "alpha", "mid"]))

    assert page.metrics == ["zeta", "alpha", "mid"]


@pytest.mark.asyncio
async def test_fixed_one_hour_lookback(catalog, client_with):
    client = client_with(["up"])
    await catalog.list(client, org_id="tenantB")

    client.label_values.assert_called_once_with(
        METRIC_NAME_LABEL, NOW - timedelta(hours=1), NOW, org_id="tenantB"
    )


@pytest.mark.asyncio
async def test_invalid_pattern_makes_no_backend_call(catalog, client_with):
    client = client_with(["up"])

    with pytest.raises(InvalidPattern):
        await catalog.list(client, "cpu[")
    client.label_values.assert_not_called()


@pytest.mark.asyncio
async def test_repeated_calls_are_stable(catalog, client_with):
    client = client_with(["cpu", "memory", "disk_cpu", "cpu_seconds"])

    first = await catalog.list(client, "cpu*", limit=1, offset=1)
    second = await catalog.list(client, "cpu*", limit=1, offset=1)

    assert (first.total_count, first.returned_count, first.has_more) == \
        (second.total_count, second.returned_count, second.has_more)
    assert first.to_dict() == {
        "total_count": 2,
        "returned_count": 1,
        "offset": 1,
        "limit": 1,
        "has_more": False,
        "metrics": ["cpu_seconds"],
    }


@pytest.mark.asyncio
async def test_backend_failure_wrapped(catalog, mock_client):
    client = mock_client("pmm")
    client.label_values.side_effect = httpx.ConnectError("connection refused")

    with pytest.raises(QueryExecutionError) as exc_info:
        await catalog.list(client)
    assert exc_info.value.backend == "pmm"
    assert "connection refused" in str(exc_info.value)


@pytest.mark.parametrize("pattern,name,expected", [
    ("*cpu*", "node_cpu_seconds_total", True),
    ("redis*", "redis_up", True),
    ("redis*", "up_redis", False),
    ("go_?c", "go_gc", True),
    ("go_?c", "go_gcc", False),
    ("[a-c]pu", "bpu", True),
    ("[^a-c]pu", "cpu", False),
    ("[!a-c]pu", "xpu", True),
    ("a\\*b", "a*b", True),
    ("a\\*b", "axb", False),
    ("http.requests", "http_requests", False),
])
def test_glob_matching(pattern, name, expected):
    assert bool(compile_glob(pattern).match(name)) is expected


@pytest.mark.parametrize("pattern", ["cpu[", "[]", "[a-]", "[z-a]", "trailing\\", "[^"])
def test_malformed_globs(pattern):
    with pytest.raises(InvalidPattern):
        compile_glob(pattern)
