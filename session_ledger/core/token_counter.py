"""
Token counting and usage extraction.

Normalizes the usage payloads of the different engines into one shape.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple


class MalformedRecordError(ValueError):
    """Raised when a usage payload carries a token count that cannot be used."""


@dataclass(frozen=True)
class StandardizedUsage:
    """Token usage of one API call, independent of the reporting engine.

    All counts are non-negative integers. A zero count is a reported zero,
    while a payload with no usage at all is represented by ``None``.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens across all four counters."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    @property
    def context_tokens(self) -> int:
        """Tokens occupying the context window (output excluded)."""
        return self.input_tokens + self.cache_creation_tokens + self.cache_read_tokens

    @property
    def has_billable_signal(self) -> bool:
        """True when any input-side counter is positive."""
        return self.context_tokens > 0


@dataclass(frozen=True)
class FieldRule:
    """One source field that may supply a standardized counter."""
    target: str
    source: str
    origin: str  # engine family that uses this spelling


# Where the usage object may live, checked in order.
USAGE_LOCATIONS: Tuple[Tuple[str, ...], ...] = (
    ("message", "usage"),
    ("usage",),
)

# Ordered per target: the first source field present wins.
FIELD_RULES: Tuple[FieldRule, ...] = (
    FieldRule("input_tokens", "input_tokens", "all"),
    FieldRule("output_tokens", "output_tokens", "all"),
    FieldRule("cache_creation_tokens", "cache_creation_input_tokens", "claude"),
    FieldRule("cache_creation_tokens", "cache_creation_tokens", "gemini"),
    FieldRule("cache_creation_tokens", "cache_write_tokens", "codex"),
    FieldRule("cache_read_tokens", "cache_read_input_tokens", "claude"),
    FieldRule("cache_read_tokens", "cache_read_tokens", "codex"),
)


def find_usage_payload(record: Any) -> Optional[Mapping[str, Any]]:
    """Return the usage mapping of a raw record, or None."""
    if not isinstance(record, Mapping):
        return None
    for path in USAGE_LOCATIONS:
        node: Any = record
        for part in path:
            if not isinstance(node, Mapping):
                node = None
                break
            node = node.get(part)
        if isinstance(node, Mapping):
            return node
    return None


def _as_count(value: Any, field_name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(f"Token field '{field_name}' is not a number: {value!r}")
    if value < 0:
        raise MalformedRecordError(f"Token field '{field_name}' is negative: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise MalformedRecordError(f"Token field '{field_name}' is not whole: {value!r}")
    return int(value)


def _resolve(usage: Mapping[str, Any], target: str) -> int:
    for rule in FIELD_RULES:
        if rule.target != target:
            continue
        value = usage.get(rule.source)
        if value is not None:
            return _as_count(value, rule.source)
    return 0


def standardize_usage(usage: Mapping[str, Any]) -> StandardizedUsage:
    """Map one engine usage payload onto StandardizedUsage.

    Args:
        usage: Raw usage mapping as emitted by an engine

    Returns:
        StandardizedUsage with absent counters set to zero

    Raises:
        MalformedRecordError: If a present counter is negative or not numeric
    """
    return StandardizedUsage(
        input_tokens=_resolve(usage, "input_tokens"),
        output_tokens=_resolve(usage, "output_tokens"),
        cache_creation_tokens=_resolve(usage, "cache_creation_tokens"),
        cache_read_tokens=_resolve(usage, "cache_read_tokens"),
    )


def extract_usage(record: Any) -> Optional[StandardizedUsage]:
    """Extract standardized usage from one raw session record.

    Output-only payloads (echo/ack records with just output deltas) are
    reported as having no usage.

    Args:
        record: Raw session record

    Returns:
        StandardizedUsage, or None when no billable usage is present

    Raises:
        MalformedRecordError: If the usage payload has an unusable counter
    """
    payload = find_usage_payload(record)
    if payload is None:
        return None
    usage = standardize_usage(payload)
    if not usage.has_billable_signal:
        return None
    return usage
