"""
Session Ledger.

Reconciles the usage records of multi-engine assistant sessions into a
deduplicated billing ledger and a live context window occupancy metric.
"""

from session_ledger.config.loader import DEFAULT_CONFIG, LedgerConfig, UsageLevel, load_ledger_config
from session_ledger.core.aggregation import aggregate_session_cost
from session_ledger.core.context_window import estimate_context_window
from session_ledger.core.token_counter import StandardizedUsage, extract_usage
from session_ledger.history.models import (
    BillingEvent,
    CompactionProjection,
    ContextWindowUsage,
    SessionCostAggregation,
    SessionCostTotals,
)

__all__ = [
    "DEFAULT_CONFIG",
    "LedgerConfig",
    "UsageLevel",
    "load_ledger_config",
    "aggregate_session_cost",
    "estimate_context_window",
    "StandardizedUsage",
    "extract_usage",
    "BillingEvent",
    "CompactionProjection",
    "ContextWindowUsage",
    "SessionCostAggregation",
    "SessionCostTotals",
]
