"""
Session cost aggregation.

Orders reconciled billing events in time and sums them into session totals.
The whole pipeline is a pure projection over the history it is given:
nothing is cached between calls, so repeated calls on the same history
produce equal results.
"""

from decimal import Decimal
from typing import Any, Iterable, List, Sequence, Tuple

from session_ledger.config.loader import DEFAULT_CONFIG, LedgerConfig
from session_ledger.history.models import (
    BillingEvent,
    SessionCostAggregation,
    SessionCostTotals,
)

from .reconciler import reconcile_events


def _temporal_sort_key(event: BillingEvent) -> Tuple[int, int, int]:
    # Timestamped events first, by time; the rest by original position.
    if event.timestamp_ms is not None:
        return 0, event.timestamp_ms, event.sequence_index
    return 1, 0, event.sequence_index


def order_events(events: Iterable[BillingEvent]) -> List[BillingEvent]:
    """Sort events ascending by timestamp, untimestamped events last."""
    return sorted(events, key=_temporal_sort_key)


def sum_events(events: Sequence[BillingEvent]) -> SessionCostTotals:
    """Sum every usage field and the cost in one pass over ``events``."""
    total_cost = Decimal("0")
    total_tokens = 0
    input_tokens = 0
    output_tokens = 0
    cache_read_tokens = 0
    cache_write_tokens = 0

    for event in events:
        total_cost += event.cost
        total_tokens += event.usage.total_tokens
        input_tokens += event.usage.input_tokens
        output_tokens += event.usage.output_tokens
        cache_read_tokens += event.usage.cache_read_tokens
        cache_write_tokens += event.usage.cache_creation_tokens

    return SessionCostTotals(
        total_cost=total_cost,
        total_tokens=total_tokens,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_read_tokens=cache_read_tokens,
        cache_write_tokens=cache_write_tokens,
    )


def build_aggregation(events: Iterable[BillingEvent]) -> SessionCostAggregation:
    """Order reconciled events and derive totals and the time span."""
    ordered = order_events(events)
    timestamps = [e.timestamp_ms for e in ordered if e.timestamp_ms is not None]

    return SessionCostAggregation(
        totals=sum_events(ordered),
        events=ordered,
        first_timestamp_ms=min(timestamps) if timestamps else None,
        last_timestamp_ms=max(timestamps) if timestamps else None,
    )


def aggregate_session_cost(
    history: Sequence[Any],
    config: LedgerConfig = DEFAULT_CONFIG,
) -> SessionCostAggregation:
    """Aggregate the billable usage of a full session history.

    Args:
        history: Ordered raw session records, as emitted by the engines
        config: Ledger configuration (pricing table and billing rules)

    Returns:
        SessionCostAggregation; an empty history yields zero totals
    """
    reconciled = reconcile_events(history, config)
    return build_aggregation(reconciled.values())
