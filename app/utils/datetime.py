"""
Timestamp helpers.

Freshdesk returns ISO-8601 strings in UTC (``2025-01-01T10:00:00Z``). The
database stores naive UTC datetimes, so every remote timestamp goes through
``parse_remote_datetime`` before it is written.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone


_TZ_WITHOUT_COLON_RE = re.compile(r"([+-]\d{2})(\d{2})$")
_EXCESS_MICROS_RE = re.compile(r"(\.\d{6})\d+")


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _normalize_datetime_string(value: str) -> str:
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = f"{normalized[:-1]}+00:00"

    if _TZ_WITHOUT_COLON_RE.search(normalized):
        normalized = _TZ_WITHOUT_COLON_RE.sub(r"\1:\2", normalized)

    # fromisoformat accepts at most 6 fractional digits
    normalized = _EXCESS_MICROS_RE.sub(r"\1", normalized)
    return normalized


def parse_remote_datetime(value: object) -> datetime | None:
    """
    Parse a remote timestamp into naive UTC.

    Accepts ISO-8601 strings (with ``Z``, ``+hh:mm`` or ``+hhmm`` offsets) and
    datetime objects. Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None

    normalized = _normalize_datetime_string(value)
    candidates = [normalized]
    if " " in normalized:
        candidates.append(normalized.replace(" ", "T", 1))

    for candidate in candidates:
        try:
            return to_naive_utc(datetime.fromisoformat(candidate))
        except ValueError:
            continue
    return None


def default_since(days: int) -> str:
    """ISO-8601 timestamp ``days`` before now, in the ``...Z`` form Freshdesk expects."""
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_since(value: datetime) -> str:
    return to_naive_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
