#!/usr/bin/env python
"""Metric name listing with glob filtering and pagination."""

import asyncio
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from prometheus_mcp_gateway.client import BACKEND_FAILURES, PrometheusClient
from prometheus_mcp_gateway.errors import InvalidPattern, QueryExecutionError
from prometheus_mcp_gateway.logging_config import get_logger

DEFAULT_METRICS_LIMIT = 100
METRIC_NAME_LABEL = "__name__"
LOOKBACK_WINDOW = timedelta(hours=1)

logger = get_logger()


def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Compile a shell-style glob into an anchored regex.

    Supports ``*``, ``?``, ``[...]`` classes with ranges and ``^`` negation,
    and ``\\`` escapes. ``[!...]`` is read as ``[^...]``, as in shells.
    Unterminated classes, empty classes, reversed ranges and a trailing
    escape raise InvalidPattern.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "\\":
            if i >= n:
                raise InvalidPattern(pattern, "trailing escape character")
            out.append(re.escape(pattern[i]))
            i += 1
        elif c == "[":
            i = _compile_class(pattern, i, out)
        else:
            out.append(re.escape(c))
    return re.compile("".join(out) + r"\Z", re.DOTALL)


def _compile_class(pattern: str, i: int, out: List[str]) -> int:
    n = len(pattern)
    negate = i < n and pattern[i] in "^!"
    if negate:
        i += 1
    items = []
    while True:
        if i >= n:
            raise InvalidPattern(pattern, "unterminated character class")
        if pattern[i] == "]" and items:
            i += 1
            break
        lo, i = _class_char(pattern, i)
        if i < n and pattern[i] == "-" and i + 1 < n and pattern[i + 1] != "]":
            hi, i = _class_char(pattern, i + 1)
            if hi < lo:
                raise InvalidPattern(pattern, f"reversed range {lo}-{hi}")
            items.append(f"{re.escape(lo)}-{re.escape(hi)}")
        else:
            items.append(re.escape(lo))
    out.append("[" + ("^" if negate else "") + "".join(items) + "]")
    return i


def _class_char(pattern: str, i: int):
    c = pattern[i]
    if c == "\\":
        if i + 1 >= len(pattern):
            raise InvalidPattern(pattern, "trailing escape character")
        return pattern[i + 1], i + 2
    if c in "-]":
        raise InvalidPattern(pattern, f"unexpected {c!r} in character class")
    return c, i + 1


@dataclass(frozen=True)
class MetricsPage:
    total_count: int
    returned_count: int
    offset: int
    limit: int
    has_more: bool
    metrics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MetricsCatalog:
    """Lists metric names of a backend client."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def list(self, client: PrometheusClient, pattern: str = "", limit: int = 0, offset: int = 0,
                   org_id: Optional[str] = None) -> MetricsPage:
        """Return one page of metric names, optionally filtered by a glob."""
        if limit is None or limit <= 0:
            limit = DEFAULT_METRICS_LIMIT
        if offset is None or offset < 0:
            offset = 0

        # Validated before any backend call
        matcher = compile_glob(pattern) if pattern else None

        end = self._clock()
        start = end - LOOKBACK_WINDOW
        logger.info("Listing available metrics", backend=client.name, pattern=pattern or None,
                    limit=limit, offset=offset, org_id=org_id or None)
        try:
            names, warnings = await client.label_values(METRIC_NAME_LABEL, start, end, org_id=org_id or None)
        except asyncio.CancelledError:
            logger.info("Metrics listing cancelled", backend=client.name)
            raise
        except BACKEND_FAILURES as e:
            logger.error("Failed to fetch metrics list", backend=client.name, error=str(e),
                         error_type=type(e).__name__)
            raise QueryExecutionError(client.name, str(e), operation="metrics listing") from e

        if warnings:
            logger.warning("Backend returned warnings", backend=client.name,
                           operation="metrics listing", warnings=warnings)

        if matcher is not None:
            filtered = [name for name in names if matcher.match(name)]
            logger.debug("Applied filter", original_count=len(names), filtered_count=len(filtered), pattern=pattern)
        else:
            filtered = list(names)

        total = len(filtered)
        window_start = min(offset, total)
        window_end = min(offset + limit, total)
        page = filtered[window_start:window_end]

        result = MetricsPage(
            total_count=total,
            returned_count=len(page),
            offset=offset,
            limit=limit,
            has_more=offset + limit < total,
            metrics=page,
        )
        logger.info("Metrics list retrieved", backend=client.name, total_count=total,
                    returned_count=len(page), offset=offset, has_more=result.has_more)
        return result
