"""
Context window occupancy estimation.

Occupancy is read from the most recent usage report only: engines report
the full prompt size of each call, so the last call describes the live
context. It is never summed over history.
"""

from typing import Any, Optional, Sequence

from session_ledger.config.loader import (
    DEFAULT_CONFIG,
    LedgerConfig,
    UsageLevel,
    UsageLevelThresholds,
)
from session_ledger.config.logger import get_logger
from session_ledger.history.models import CompactionProjection, ContextWindowUsage

from .pricing import match_model
from .token_counter import MalformedRecordError, StandardizedUsage, extract_usage

LOGGER = get_logger("session_ledger.context_window")


def classify_usage_level(
    percentage: float,
    thresholds: UsageLevelThresholds = DEFAULT_CONFIG.usage_levels,
) -> UsageLevel:
    """Map an occupancy percentage onto a usage level."""
    if percentage >= thresholds.critical:
        return UsageLevel.CRITICAL
    if percentage >= thresholds.high:
        return UsageLevel.HIGH
    if percentage >= thresholds.medium:
        return UsageLevel.MEDIUM
    return UsageLevel.LOW


def get_context_window_size(model: Optional[str], config: LedgerConfig = DEFAULT_CONFIG) -> int:
    """Context window size of a model, or the configured default."""
    if model and model.strip():
        matched = match_model(model, config.context_windows)
        if matched is not None:
            return config.context_windows[matched]
    return config.default_window_size


def find_current_usage(history: Sequence[Any]) -> Optional[StandardizedUsage]:
    """Scan newest-first for the latest record reporting usage."""
    for index in range(len(history) - 1, -1, -1):
        try:
            usage = extract_usage(history[index])
        except MalformedRecordError as e:
            LOGGER.warning("Skipping malformed record", extra={"index": index, "error": str(e)})
            continue
        if usage is not None:
            return usage
    return None


def project_compaction(
    current_tokens: int,
    window_size: int,
    engine: Optional[str],
    config: LedgerConfig = DEFAULT_CONFIG,
) -> Optional[CompactionProjection]:
    """Project the auto-compaction point for engines with a known buffer.

    Args:
        current_tokens: Tokens currently in the context window
        window_size: Context window size of the model
        engine: Engine identifier
        config: Ledger configuration

    Returns:
        CompactionProjection, or None for engines without a compaction buffer
    """
    if engine is None or engine not in config.auto_compact_buffers:
        return None

    buffer = config.auto_compact_buffers[engine]
    threshold = window_size - buffer
    threshold_percentage = threshold / window_size * 100 if window_size > 0 else 0.0

    return CompactionProjection(
        buffer=buffer,
        threshold=threshold,
        threshold_percentage=threshold_percentage,
        tokens_until_compact=max(0, threshold - current_tokens),
        near_compact=current_tokens >= threshold * config.near_compact_ratio,
        will_trigger_compact=current_tokens >= threshold,
    )


def estimate_context_window(
    history: Sequence[Any],
    model: Optional[str] = None,
    engine: Optional[str] = None,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> ContextWindowUsage:
    """Estimate the live context window occupancy of a session.

    Args:
        history: Ordered raw session records
        model: Optional model hint used for the window size lookup
        engine: Optional engine; only engines with a configured
            auto-compact buffer get a compaction projection
        config: Ledger configuration

    Returns:
        ContextWindowUsage; ``has_data`` is False when no record reports usage
    """
    window_size = get_context_window_size(model, config)
    usage = find_current_usage(history or [])

    if usage is None:
        return ContextWindowUsage(
            current_tokens=0,
            window_size=window_size,
            percentage=0.0,
            breakdown=StandardizedUsage(),
            level=UsageLevel.LOW,
            has_data=False,
        )

    current_tokens = usage.context_tokens
    percentage = min(current_tokens / window_size * 100, 100.0) if window_size > 0 else 0.0

    return ContextWindowUsage(
        current_tokens=current_tokens,
        window_size=window_size,
        percentage=percentage,
        breakdown=usage,
        level=classify_usage_level(percentage, config.usage_levels),
        has_data=True,
        compaction=project_compaction(
            current_tokens,
            window_size,
            engine.lower() if engine else None,
            config,
        ),
    )
