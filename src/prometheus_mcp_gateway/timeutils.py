"""Parsing helpers for timestamp and duration arguments."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from prometheus_mcp_gateway.errors import InvalidArgument

DEFAULT_STEP = timedelta(minutes=1)

_DURATION_UNITS = {
    "ns": timedelta(microseconds=0.001),
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_FRACTION = re.compile(r"([Tt ]\d{2}:\d{2}:\d{2})\.(\d+)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as '30s', '5m' or '1h30m'.

    Units: ns, us, ms, s, m, h. A bare '0' is accepted.
    """
    text = (value or "").strip()
    if not text:
        raise InvalidArgument("invalid duration: empty string")
    if text == "0":
        return timedelta(0)

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    total = timedelta(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise InvalidArgument(f"invalid duration {value!r}")
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        pos = match.end()
    if pos == 0:
        raise InvalidArgument(f"invalid duration {value!r}")
    return total * sign


def parse_step(value: Optional[str]) -> timedelta:
    """Parse a range-query step, defaulting to one minute."""
    if not value:
        return DEFAULT_STEP
    try:
        step = parse_duration(value)
    except InvalidArgument as exc:
        raise InvalidArgument(f"invalid step duration: {exc}") from exc
    if step <= timedelta(0):
        raise InvalidArgument(f"invalid step duration: {value!r} must be positive")
    return step


def parse_rfc3339(value: str, field: str = "time") -> datetime:
    """Parse an RFC3339 timestamp into an aware datetime."""
    text = (value or "").strip()
    if not text:
        raise InvalidArgument(f"{field} parameter is required")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat only takes 3 or 6 fractional digits before Python 3.11
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidArgument(f"invalid {field} format, use RFC3339: {exc}") from exc
    if parsed.tzinfo is None:
        raise InvalidArgument(f"invalid {field} format, use RFC3339: missing timezone offset in {value!r}")
    return parsed


def parse_optional_time(value: Optional[str], field: str = "time") -> datetime:
    """Parse an optional RFC3339 timestamp; absent means now."""
    if not value:
        return datetime.now(timezone.utc)
    return parse_rfc3339(value, field)


def format_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as the Unix timestamp string Prometheus accepts."""
    return f"{value.timestamp():.3f}"


def format_step(value: timedelta) -> str:
    """Render a step as seconds, the unit Prometheus uses for float steps."""
    seconds = value.total_seconds()
    if seconds.is_integer():
        return str(int(seconds))
    return str(seconds)


def format_duration(value: timedelta) -> str:
    """Render a timedelta as a compact duration like '1h30m' or '15s'."""
    seconds = value.total_seconds()
    if seconds == 0:
        return "0s"
    parts = []
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    fraction = seconds - int(seconds)
    if secs or fraction:
        parts.append(f"{secs + fraction:g}s")
    return "".join(parts)
