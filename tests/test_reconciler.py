"""
Unit tests for event reconciliation.

Tests billable classification and the replacement rule for repeated
emissions of one API call.
"""

import logging
from dataclasses import replace
from decimal import Decimal

from session_ledger.config.loader import DEFAULT_CONFIG
from session_ledger.core.reconciler import (
    build_billing_event,
    is_billable,
    reconcile_events,
    supersedes,
)
from session_ledger.core.token_counter import StandardizedUsage
from session_ledger.history.models import BillingEvent


def _assistant(message_id, input_tokens, output_tokens=0, timestamp=None, **extra):
    record = {
        "type": "assistant",
        "message": {
            "id": message_id,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        },
    }
    if timestamp is not None:
        record["timestamp"] = timestamp
    record.update(extra)
    return record


def _event(total, timestamp_ms=None, index=0):
    return BillingEvent(
        key="message:x",
        usage=StandardizedUsage(input_tokens=total),
        engine="claude",
        model="claude-sonnet-4-5",
        cost=Decimal("0"),
        sequence_index=index,
        timestamp_ms=timestamp_ms,
    )


class TestBillableClassification:
    """Test which records may carry billable usage."""

    def test_assistant_is_billable(self):
        """Verify assistant records are billable for every engine."""
        for engine in ("claude", "codex", "gemini"):
            assert is_billable({"type": "assistant"}, engine)

    def test_user_is_not_billable(self):
        """Verify user records are never billable."""
        assert not is_billable({"type": "user", "usage": {"input_tokens": 5}}, "claude")

    def test_codex_system_usage_is_billable(self):
        """Verify Codex system records with usage are billable."""
        assert is_billable({"type": "system", "usage": {"input_tokens": 5}}, "codex")

    def test_claude_system_usage_is_not_billable(self):
        """Verify system records of other engines are not billable."""
        assert not is_billable({"type": "system", "usage": {"input_tokens": 5}}, "claude")

    def test_system_without_usage_is_not_billable(self):
        """Verify system records without usage are not billable."""
        assert not is_billable({"type": "system"}, "codex")

    def test_system_engines_are_configurable(self):
        """Verify the system-usage engine set comes from configuration."""
        config = replace(DEFAULT_CONFIG, system_usage_engines=frozenset({"gemini"}))
        record = {"type": "system", "usage": {"input_tokens": 5}}
        assert is_billable(record, "gemini", config)
        assert not is_billable(record, "codex", config)


class TestReplacementRule:
    """Test the ordering that decides which emission wins."""

    def test_more_tokens_wins(self):
        """Verify a strictly larger snapshot replaces the stored one."""
        assert supersedes(_event(340), _event(120))

    def test_fewer_tokens_loses(self):
        """Verify a smaller snapshot never replaces, even if newer."""
        assert not supersedes(_event(120, timestamp_ms=2000), _event(340, timestamp_ms=1000))

    def test_tie_later_timestamp_wins(self):
        """Verify equal totals prefer the later timestamp."""
        assert supersedes(_event(100, timestamp_ms=2000), _event(100, timestamp_ms=1000))

    def test_tie_earlier_timestamp_loses(self):
        """Verify equal totals keep the later-timestamped stored event."""
        assert not supersedes(_event(100, timestamp_ms=1000), _event(100, timestamp_ms=2000))

    def test_tie_equal_timestamp_later_arrival_wins(self):
        """Verify a full tie goes to the later-processed record."""
        assert supersedes(_event(100, timestamp_ms=1000), _event(100, timestamp_ms=1000))

    def test_tie_untimestamped_does_not_displace_timestamped(self):
        """Verify a missing timestamp ranks below any present one."""
        assert not supersedes(_event(100), _event(100, timestamp_ms=1000))
        assert supersedes(_event(100, timestamp_ms=1000), _event(100))


class TestReconcileEvents:
    """Test folding whole histories."""

    def test_dedup_keeps_largest_snapshot(self):
        """Verify streamed partial and final emissions collapse to the final one."""
        history = [
            _assistant("msg_1", 100, 20),
            _assistant("msg_1", 300, 40),
        ]
        reconciled = reconcile_events(history)
        assert list(reconciled) == ["message:msg_1"]
        event = reconciled["message:msg_1"]
        assert event.total_tokens == 340
        assert event.sequence_index == 1

    def test_later_smaller_emission_is_ignored(self):
        """Verify a later, smaller emission does not shrink the event."""
        history = [
            _assistant("msg_1", 300, 40),
            _assistant("msg_1", 100, 20),
        ]
        event = reconcile_events(history)["message:msg_1"]
        assert event.total_tokens == 340
        assert event.sequence_index == 0

    def test_tie_break_by_recency(self):
        """Verify equal totals resolve to the later timestamp regardless of arrival."""
        history = [
            _assistant("msg_1", 100, timestamp="2025-01-01T00:00:05Z", model="claude-opus-4-1"),
            _assistant("msg_1", 100, timestamp="2025-01-01T00:00:01Z", model="claude-haiku-4-5"),
        ]
        event = reconcile_events(history)["message:msg_1"]
        assert event.model == "claude-opus-4-1"
        assert event.timestamp == "2025-01-01T00:00:05Z"

    def test_tie_break_by_recency_with_fractional_seconds(self):
        """Verify one-digit and nanosecond fractions take part in the tie-break."""
        history = [
            _assistant("msg_1", 100, timestamp="2025-01-01T00:00:05.123456789Z", model="claude-opus-4-1"),
            _assistant("msg_1", 100, timestamp="2025-01-01T00:00:05.1Z", model="claude-haiku-4-5"),
        ]
        event = reconcile_events(history)["message:msg_1"]
        assert event.model == "claude-opus-4-1"
        assert event.timestamp_ms == 1735689605123

    def test_distinct_keys_are_kept(self):
        """Verify different calls stay separate."""
        history = [_assistant("msg_1", 10), _assistant("msg_2", 10)]
        assert len(reconcile_events(history)) == 2

    def test_output_only_records_are_excluded(self):
        """Verify output-only records contribute no event."""
        history = [{
            "type": "assistant",
            "message": {"id": "msg_1", "usage": {
                "input_tokens": 0,
                "output_tokens": 50,
                "cache_creation_input_tokens": 0,
                "cache_read_input_tokens": 0,
            }},
        }]
        assert reconcile_events(history) == {}

    def test_malformed_record_is_isolated(self, caplog):
        """Verify a malformed record is skipped without losing the rest."""
        history = [
            _assistant("msg_1", 10),
            {"type": "assistant", "message": {"id": "bad", "usage": {"input_tokens": -5}}},
            "not even a record",
            None,
            _assistant("msg_2", 20),
        ]
        with caplog.at_level(logging.WARNING, logger="session_ledger.reconciler"):
            reconciled = reconcile_events(history)
        assert sorted(reconciled) == ["message:msg_1", "message:msg_2"]
        assert "Skipping malformed record" in caplog.text

    def test_empty_history(self):
        """Verify an empty history reconciles to nothing."""
        assert reconcile_events([]) == {}
        assert reconcile_events(None) == {}


class TestBuildBillingEvent:
    """Test construction of single billing events."""

    def test_codex_system_event(self):
        """Verify a Codex usage record is priced with the Codex default model."""
        record = {
            "type": "system",
            "codexMetadata": {},
            "usage": {"input_tokens": 1000000, "cache_read_tokens": 1000000},
        }
        event = build_billing_event(record, 4)
        assert event.engine == "codex"
        assert event.model == "codex-mini-latest"
        assert event.key == "index:4"
        # 1.50 input + 0.375 cache read
        assert event.cost == Decimal("1.875")

    def test_unknown_model_flags_fallback(self):
        """Verify the event records that a fallback rate was used."""
        event = build_billing_event(_assistant("msg_1", 10, model="brand-new-model"), 0)
        assert event.model == "brand-new-model"
        assert event.pricing_fallback is True
        assert event.cost > 0
