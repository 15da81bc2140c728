"""
Pricing calculations and rate management.

Handles engine detection, model resolution and cost computation for the
engines that report usage into a session history.
"""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from session_ledger.config.logger import get_logger

from .token_counter import StandardizedUsage

LOGGER = get_logger("session_ledger.pricing")

TOKENS_PER_RATE_UNIT = Decimal("1000000")

DEFAULT_ENGINE = "claude"

# Engine-specific metadata objects that may carry the model name.
ENGINE_METADATA_FIELDS: Dict[str, str] = {
    "codex": "codexMetadata",
}


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model, in USD per 1M tokens."""
    input_rate: Decimal
    output_rate: Decimal
    cache_write_rate: Decimal
    cache_read_rate: Decimal

    def __post_init__(self):
        """Validate rates are not negative."""
        for name in ("input_rate", "output_rate", "cache_write_rate", "cache_read_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass(frozen=True)
class EnginePricing:
    """Model rates for one engine plus the model used when none matches."""
    default_model: str
    models: Mapping[str, ModelPricing]

    def __post_init__(self):
        """Validate the default model has an entry and freeze the rates."""
        object.__setattr__(self, "models", MappingProxyType(dict(self.models)))
        if normalize_model_name(self.default_model) not in {
            normalize_model_name(name) for name in self.models
        }:
            raise ValueError(f"Default model '{self.default_model}' has no pricing entry")


@dataclass(frozen=True)
class CostQuote:
    """Cost of one usage record and how its rate was chosen."""
    cost: Decimal
    engine: str
    model: str
    resolved_model: str
    fallback: bool


def normalize_model_name(model: str) -> str:
    """Normalize a model identifier for table lookups."""
    normalized = model.strip().lower()
    if normalized.startswith("models/"):
        normalized = normalized[len("models/"):]
    return normalized.replace(".", "-")


def match_model(model: str, candidates: Iterable[str]) -> Optional[str]:
    """Find the configured name matching ``model``.

    Exact (normalized) matches win, then the longest configured name that
    is a prefix of the model, so dated snapshots resolve to their family.

    Returns:
        The matching candidate as configured, or None
    """
    normalized = normalize_model_name(model)
    best: Optional[str] = None
    best_length = -1
    for candidate in candidates:
        key = normalize_model_name(candidate)
        if key == normalized:
            return candidate
        if normalized.startswith(key) and len(key) > best_length:
            best = candidate
            best_length = len(key)
    return best


@dataclass(frozen=True)
class PricingTable:
    """Engine-aware pricing table."""
    engines: Mapping[str, EnginePricing]
    default_engine: str = DEFAULT_ENGINE

    def __post_init__(self):
        """Validate the default engine exists and freeze the table."""
        object.__setattr__(self, "engines", MappingProxyType(dict(self.engines)))
        if self.default_engine not in self.engines:
            raise ValueError(f"Default engine '{self.default_engine}' has no pricing entry")

    def engine_pricing(self, engine: str) -> EnginePricing:
        """Get the pricing of an engine, falling back to the default engine."""
        return self.engines.get(engine, self.engines[self.default_engine])

    def default_model(self, engine: str) -> str:
        """Documented default model of an engine."""
        return self.engine_pricing(engine).default_model

    def get_pricing(self, engine: str, model: str) -> Tuple[str, ModelPricing, bool]:
        """Get pricing for a model of an engine.

        Unknown engines use the default engine's table and unknown models
        use the engine's default model; neither raises.

        Args:
            engine: Engine identifier
            model: Model identifier

        Returns:
            (resolved model name, pricing, fallback flag)
        """
        engine_pricing = self.engine_pricing(engine)
        matched = match_model(model, engine_pricing.models)
        if matched is not None:
            return matched, engine_pricing.models[matched], engine not in self.engines
        default = match_model(engine_pricing.default_model, engine_pricing.models)
        return default, engine_pricing.models[default], True


DEFAULT_PRICING_TABLE = PricingTable({
    "claude": EnginePricing(
        default_model="claude-sonnet-4-5",
        models={
            "claude-sonnet-4-5": ModelPricing(
                input_rate=Decimal("3.00"),
                output_rate=Decimal("15.00"),
                cache_write_rate=Decimal("3.75"),
                cache_read_rate=Decimal("0.30"),
            ),
            "claude-sonnet-4": ModelPricing(
                input_rate=Decimal("3.00"),
                output_rate=Decimal("15.00"),
                cache_write_rate=Decimal("3.75"),
                cache_read_rate=Decimal("0.30"),
            ),
            "claude-opus-4-1": ModelPricing(
                input_rate=Decimal("15.00"),
                output_rate=Decimal("75.00"),
                cache_write_rate=Decimal("18.75"),
                cache_read_rate=Decimal("1.50"),
            ),
            "claude-haiku-4-5": ModelPricing(
                input_rate=Decimal("1.00"),
                output_rate=Decimal("5.00"),
                cache_write_rate=Decimal("1.25"),
                cache_read_rate=Decimal("0.10"),
            ),
        },
    ),
    "codex": EnginePricing(
        default_model="codex-mini-latest",
        models={
            "codex-mini-latest": ModelPricing(
                input_rate=Decimal("1.50"),
                output_rate=Decimal("6.00"),
                cache_write_rate=Decimal("1.50"),
                cache_read_rate=Decimal("0.375"),
            ),
            "gpt-5-codex": ModelPricing(
                input_rate=Decimal("1.25"),
                output_rate=Decimal("10.00"),
                cache_write_rate=Decimal("1.25"),
                cache_read_rate=Decimal("0.125"),
            ),
            "gpt-5": ModelPricing(
                input_rate=Decimal("1.25"),
                output_rate=Decimal("10.00"),
                cache_write_rate=Decimal("1.25"),
                cache_read_rate=Decimal("0.125"),
            ),
        },
    ),
    "gemini": EnginePricing(
        default_model="gemini-2.5-pro",
        models={
            "gemini-2.5-pro": ModelPricing(
                input_rate=Decimal("1.25"),
                output_rate=Decimal("10.00"),
                cache_write_rate=Decimal("1.25"),
                cache_read_rate=Decimal("0.31"),
            ),
            "gemini-2.5-flash": ModelPricing(
                input_rate=Decimal("0.30"),
                output_rate=Decimal("2.50"),
                cache_write_rate=Decimal("0.30"),
                cache_read_rate=Decimal("0.075"),
            ),
        },
    ),
})


def detect_engine(record: Mapping[str, Any]) -> str:
    """Detect which engine emitted a raw record."""
    engine = record.get("engine")
    if isinstance(engine, str) and engine.strip():
        return engine.strip().lower()
    if isinstance(record.get("codexMetadata"), Mapping):
        return "codex"
    return DEFAULT_ENGINE


def resolve_model_name(
    record: Mapping[str, Any],
    engine: str,
    pricing_table: PricingTable = DEFAULT_PRICING_TABLE,
) -> str:
    """Resolve the model that produced a record.

    Checks the top-level ``model``, then ``message.model``, then the
    engine's metadata object, then the engine's default model.
    """
    message = record.get("message")
    candidates = [
        record.get("model"),
        message.get("model") if isinstance(message, Mapping) else None,
    ]
    metadata_field = ENGINE_METADATA_FIELDS.get(engine)
    if metadata_field is not None:
        metadata = record.get(metadata_field)
        if isinstance(metadata, Mapping):
            candidates.append(metadata.get("model"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return pricing_table.default_model(engine)


def calculate_cost(
    engine: str,
    model: str,
    usage: StandardizedUsage,
    pricing_table: PricingTable = DEFAULT_PRICING_TABLE,
) -> CostQuote:
    """Calculate the exact cost of one usage record.

    The cost is an unrounded Decimal; rounding is left to display code.

    Args:
        engine: Engine identifier
        model: Model identifier
        usage: Standardized token usage
        pricing_table: Engine-aware pricing table

    Returns:
        CostQuote with the cost and whether a fallback rate was used
    """
    resolved, pricing, fallback = pricing_table.get_pricing(engine, model)
    if fallback:
        LOGGER.warning(
            "Pricing fallback for unrecognized model",
            extra={"engine": engine, "model": model, "resolvedModel": resolved},
        )

    cost = (
        Decimal(usage.input_tokens) * pricing.input_rate
        + Decimal(usage.output_tokens) * pricing.output_rate
        + Decimal(usage.cache_creation_tokens) * pricing.cache_write_rate
        + Decimal(usage.cache_read_tokens) * pricing.cache_read_rate
    ) / TOKENS_PER_RATE_UNIT

    return CostQuote(
        cost=cost,
        engine=engine,
        model=model,
        resolved_model=resolved,
        fallback=fallback,
    )
