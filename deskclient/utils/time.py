from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or datetime) coming from the API.

    Naive values are assumed to be UTC. Anything unparseable returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def sort_key(value: Any) -> float:
    parsed = parse_timestamp(value)
    if parsed is None:
        return 0.0
    return parsed.timestamp()


def format_datetime(value: Any) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return "Not available"
    return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
