"""
Event reconciliation.

Folds a session history into one billing event per logical API call.

Engines re-emit the same call several times while streaming, each time
with a larger token count. Reconciliation keeps, per billing key, the
event that ranks highest under a total order:

1. Total token count - the most complete snapshot wins
2. Timestamp (missing counts as 0) - ties prefer the more recent record
3. Arrival order - on a full tie the later record wins
"""

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from session_ledger.config.loader import DEFAULT_CONFIG, LedgerConfig
from session_ledger.config.logger import get_logger
from session_ledger.history.models import BillingEvent

from .billing_key import extract_timestamp, resolve_billing_key
from .pricing import calculate_cost, detect_engine, resolve_model_name
from .token_counter import MalformedRecordError, extract_usage

LOGGER = get_logger("session_ledger.reconciler")


def is_billable(record: Mapping[str, Any], engine: str, config: LedgerConfig = DEFAULT_CONFIG) -> bool:
    """Classify whether a raw record can carry a billable usage report.

    Assistant records are billable for every engine. System records are
    billable only when they carry a usage payload and their engine is one
    that reports usage on system events.
    """
    record_type = record.get("type")
    if record_type == "assistant":
        return True
    if record_type == "system" and isinstance(record.get("usage"), Mapping):
        return engine in config.system_usage_engines
    return False


def reconciliation_rank(event: BillingEvent) -> Tuple[int, int]:
    """Comparable rank of an event among emissions sharing its key."""
    return event.total_tokens, event.timestamp_ms if event.timestamp_ms is not None else 0


def supersedes(candidate: BillingEvent, stored: BillingEvent) -> bool:
    """True when a later-processed event replaces the stored one."""
    return reconciliation_rank(candidate) >= reconciliation_rank(stored)


def build_billing_event(
    record: Any,
    index: int,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> Optional[BillingEvent]:
    """Build the billing event for one raw record.

    Args:
        record: Raw session record
        index: Position of the record in the history
        config: Ledger configuration

    Returns:
        BillingEvent, or None when the record is not billable or has no usage

    Raises:
        MalformedRecordError: If the record's usage payload is unusable
    """
    if not isinstance(record, Mapping):
        return None

    engine = detect_engine(record)
    if not is_billable(record, engine, config):
        return None

    usage = extract_usage(record)
    if usage is None or usage.total_tokens == 0:
        return None

    model = resolve_model_name(record, engine, config.pricing)
    quote = calculate_cost(engine, model, usage, config.pricing)
    timestamp, timestamp_ms = extract_timestamp(record)

    return BillingEvent(
        key=resolve_billing_key(record, index),
        usage=usage,
        engine=engine,
        model=model,
        cost=quote.cost,
        sequence_index=index,
        timestamp=timestamp,
        timestamp_ms=timestamp_ms,
        pricing_fallback=quote.fallback,
    )


def reconcile_events(
    history: Sequence[Any],
    config: LedgerConfig = DEFAULT_CONFIG,
) -> Dict[str, BillingEvent]:
    """Fold a full session history into one event per billing key.

    Malformed records are logged and skipped; they never abort the fold.

    Args:
        history: Ordered raw session records
        config: Ledger configuration

    Returns:
        Mapping of billing key to the winning BillingEvent
    """
    reconciled: Dict[str, BillingEvent] = {}

    for index, record in enumerate(history or []):
        try:
            event = build_billing_event(record, index, config)
        except MalformedRecordError as e:
            LOGGER.warning("Skipping malformed record", extra={"index": index, "error": str(e)})
            continue

        if event is None:
            continue

        stored = reconciled.get(event.key)
        if stored is None or supersedes(event, stored):
            if stored is not None:
                LOGGER.debug(
                    "Replacing billing event",
                    extra={"key": event.key, "index": index, "replacedIndex": stored.sequence_index},
                )
            reconciled[event.key] = event

    return reconciled
