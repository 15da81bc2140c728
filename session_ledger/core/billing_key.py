"""
Billing identity and timestamp resolution for raw session records.
"""

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

# (prefix, path) tried in order; the first non-empty string wins.
KEY_SOURCES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("message", ("message", "id")),
    ("message", ("id",)),
    ("uuid", ("uuid",)),
    ("time", ("timestamp",)),
    ("time", ("receivedAt",)),
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# fromisoformat before Python 3.11 accepts only 3 or 6 fractional digits.
_FRACTION = re.compile(r"\.(\d+)")

TIMESTAMP_SOURCES: Tuple[Tuple[str, ...], ...] = (
    ("timestamp",),
    ("receivedAt",),
    ("sentAt",),
    ("message", "timestamp"),
)


def _lookup(record: Mapping[str, Any], path: Tuple[str, ...]) -> Any:
    node: Any = record
    for part in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _non_empty_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def resolve_billing_key(record: Mapping[str, Any], index: int) -> str:
    """Derive the deduplication key for a raw record.

    Repeated emissions of one API call share a message id, so they resolve
    to the same key. Records with no usable identity fall back to their
    position, which keeps them distinct.

    Args:
        record: Raw session record
        index: Position of the record in the history

    Returns:
        Key string such as ``message:msg_01``, ``uuid:...`` or ``index:7``
    """
    for prefix, path in KEY_SOURCES:
        value = _non_empty_string(_lookup(record, path))
        if value is not None:
            return f"{prefix}:{value}"
    return f"index:{index}"


def parse_timestamp_ms(value: str) -> Optional[int]:
    """Parse an ISO-8601 string into epoch milliseconds, or None."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    delta = parsed - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def extract_timestamp(record: Mapping[str, Any]) -> Tuple[Optional[str], Optional[int]]:
    """Return the first parseable timestamp of a record as (raw, epoch_ms)."""
    for path in TIMESTAMP_SOURCES:
        raw = _non_empty_string(_lookup(record, path))
        if raw is None:
            continue
        timestamp_ms = parse_timestamp_ms(raw)
        if timestamp_ms is not None:
            return raw, timestamp_ms
    return None, None
