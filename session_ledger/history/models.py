"""
Data models for the reconciled session ledger.

Defines billing events, session totals and the context window snapshot.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from session_ledger.config.loader import UsageLevel
from session_ledger.core.token_counter import StandardizedUsage


@dataclass(frozen=True)
class BillingEvent:
    """One logical billable API call after reconciliation.

    ``sequence_index`` is the position of the winning raw record and is
    only used to order events that carry no timestamp.
    """
    key: str
    usage: StandardizedUsage
    engine: str
    model: str
    cost: Decimal
    sequence_index: int
    timestamp: Optional[str] = None
    timestamp_ms: Optional[int] = None
    pricing_fallback: bool = False

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "engine": self.engine,
            "model": self.model,
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "cache_creation_tokens": self.usage.cache_creation_tokens,
            "cache_read_tokens": self.usage.cache_read_tokens,
            "total_tokens": self.total_tokens,
            "cost": str(self.cost),
            "timestamp": self.timestamp,
            "timestamp_ms": self.timestamp_ms,
            "sequence_index": self.sequence_index,
            "pricing_fallback": self.pricing_fallback,
        }


@dataclass(frozen=True)
class SessionCostTotals:
    """Element-wise sums over the events of an aggregation."""
    total_cost: Decimal = Decimal("0")
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cost": str(self.total_cost),
            "total_tokens": self.total_tokens,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cache_write_tokens": self.cache_write_tokens,
        }


@dataclass(frozen=True)
class SessionCostAggregation:
    """Ordered ledger of billing events with their totals."""
    totals: SessionCostTotals
    events: List[BillingEvent] = field(default_factory=list)
    first_timestamp_ms: Optional[int] = None
    last_timestamp_ms: Optional[int] = None

    @property
    def event_count(self) -> int:
        return len(self.events)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view; costs are rendered as exact decimal strings."""
        return {
            "totals": self.totals.to_dict(),
            "events": [event.to_dict() for event in self.events],
            "event_count": self.event_count,
            "first_timestamp_ms": self.first_timestamp_ms,
            "last_timestamp_ms": self.last_timestamp_ms,
        }


@dataclass(frozen=True)
class CompactionProjection:
    """Where the engine will compact history, relative to current usage."""
    buffer: int
    threshold: int
    threshold_percentage: float
    tokens_until_compact: int
    near_compact: bool
    will_trigger_compact: bool


@dataclass(frozen=True)
class ContextWindowUsage:
    """Occupancy snapshot taken from the most recent usage-bearing record."""
    current_tokens: int
    window_size: int
    percentage: float
    breakdown: StandardizedUsage
    level: UsageLevel
    has_data: bool
    compaction: Optional[CompactionProjection] = None

    @property
    def formatted_percentage(self) -> str:
        if not self.has_data:
            return "0%"
        return f"{self.percentage:.1f}%"

    @property
    def formatted_tokens(self) -> str:
        return f"{format_token_count(self.current_tokens)} / {format_token_count(self.window_size)}"


def format_token_count(n: int) -> str:
    """Format a token count with K/M suffixes."""
    if n >= 1000000:
        return f"{n / 1000000:.1f}M"
    if n >= 1000:
        return f"{n / 1000:.1f}K"
    return str(n)
