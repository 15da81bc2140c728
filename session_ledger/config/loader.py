"""
Configuration management and loading.

Holds the pricing, context-window and compaction tunables of the ledger
and loads overrides from YAML.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping

import yaml

from session_ledger.core.pricing import (
    DEFAULT_PRICING_TABLE,
    EnginePricing,
    ModelPricing,
    PricingTable,
)


class UsageLevel(Enum):
    """Context window occupancy levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class UsageLevelThresholds:
    """Percentage breakpoints at which each usage level starts."""
    medium: float = 50.0
    high: float = 75.0
    critical: float = 90.0

    def __post_init__(self):
        """Validate breakpoints are ascending percentages."""
        if not 0 <= self.medium <= self.high <= self.critical <= 100:
            raise ValueError("usage level breakpoints must satisfy 0 <= medium <= high <= critical <= 100")


DEFAULT_CONTEXT_WINDOWS: Mapping[str, int] = MappingProxyType({
    "claude": 200000,
    "sonnet": 200000,
    "opus": 200000,
    "haiku": 200000,
    "codex-mini": 200000,
    "gpt-5": 400000,
    "gemini-2.5": 1048576,
})


@dataclass(frozen=True)
class LedgerConfig:
    """Complete ledger configuration. Read-only once built."""
    pricing: PricingTable = DEFAULT_PRICING_TABLE
    context_windows: Mapping[str, int] = field(default_factory=lambda: DEFAULT_CONTEXT_WINDOWS)
    default_window_size: int = 200000
    auto_compact_buffers: Mapping[str, int] = field(default_factory=lambda: {"claude": 45000})
    near_compact_ratio: float = 0.9
    usage_levels: UsageLevelThresholds = UsageLevelThresholds()
    system_usage_engines: FrozenSet[str] = frozenset({"codex"})

    def __post_init__(self):
        """Validate window sizes and compaction settings, then freeze the tables."""
        object.__setattr__(self, "context_windows", MappingProxyType(dict(self.context_windows)))
        object.__setattr__(self, "auto_compact_buffers", MappingProxyType(dict(self.auto_compact_buffers)))
        if self.default_window_size < 0:
            raise ValueError("default_window_size cannot be negative")
        for model, size in self.context_windows.items():
            if size <= 0:
                raise ValueError(f"context window for '{model}' must be > 0")
        for engine, buffer in self.auto_compact_buffers.items():
            if buffer < 0:
                raise ValueError(f"auto-compact buffer for '{engine}' cannot be negative")
        if not 0 < self.near_compact_ratio <= 1:
            raise ValueError("near_compact_ratio must be in (0, 1]")


DEFAULT_CONFIG = LedgerConfig()


def load_ledger_config(path: str) -> LedgerConfig:
    """Load and validate ledger configuration from a YAML file.

    Every section is optional; sections that are present override the
    defaults. Pricing and context-window models are merged over the
    defaults, while auto-compact buffers replace them so an engine can be
    switched off.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated LedgerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Ledger config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return DEFAULT_CONFIG
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'pricing', 'context_windows', 'auto_compact', 'usage_levels', 'billing'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    overrides: Dict[str, Any] = {}

    if 'pricing' in raw_config:
        overrides['pricing'] = _parse_pricing(raw_config['pricing'])

    if 'context_windows' in raw_config:
        windows = _require_dict(raw_config['context_windows'], 'context_windows')
        _reject_unknown(windows, {'default', 'models'}, 'context_windows')
        if 'default' in windows:
            overrides['default_window_size'] = _parse_int(windows['default'], 'context_windows.default')
        models = _require_dict(windows.get('models', {}), 'context_windows.models')
        merged = dict(DEFAULT_CONTEXT_WINDOWS)
        for model, size in models.items():
            merged[str(model)] = _parse_int(size, f"context_windows.models.{model}")
        overrides['context_windows'] = merged

    if 'auto_compact' in raw_config:
        compact = _require_dict(raw_config['auto_compact'], 'auto_compact')
        _reject_unknown(compact, {'buffers', 'near_ratio'}, 'auto_compact')
        if 'buffers' in compact:
            buffers = _require_dict(compact['buffers'], 'auto_compact.buffers')
            overrides['auto_compact_buffers'] = {
                str(engine).lower(): _parse_int(value, f"auto_compact.buffers.{engine}")
                for engine, value in buffers.items()
            }
        if 'near_ratio' in compact:
            overrides['near_compact_ratio'] = _parse_float(compact['near_ratio'], 'auto_compact.near_ratio')

    if 'usage_levels' in raw_config:
        levels = _require_dict(raw_config['usage_levels'], 'usage_levels')
        _reject_unknown(levels, {'medium', 'high', 'critical'}, 'usage_levels')
        overrides['usage_levels'] = replace(
            UsageLevelThresholds(),
            **{name: _parse_float(value, f"usage_levels.{name}") for name, value in levels.items()}
        )

    if 'billing' in raw_config:
        billing = _require_dict(raw_config['billing'], 'billing')
        _reject_unknown(billing, {'system_usage_engines'}, 'billing')
        engines = billing.get('system_usage_engines', [])
        if not isinstance(engines, list) or not all(isinstance(e, str) for e in engines):
            raise ValueError("'billing.system_usage_engines' must be a list of strings")
        overrides['system_usage_engines'] = frozenset(e.lower() for e in engines)

    return replace(DEFAULT_CONFIG, **overrides)


def _parse_pricing(data: Any) -> PricingTable:
    """Parse the pricing section, merged per engine over the defaults.

    Args:
        data: Pricing section keyed by engine

    Returns:
        PricingTable with configured engines replacing the default entries

    Raises:
        ValueError: If an engine entry is invalid
    """
    engines_data = _require_dict(data, 'pricing')
    engines = dict(DEFAULT_PRICING_TABLE.engines)

    for engine_name, engine_data in engines_data.items():
        path = f"pricing.{engine_name}"
        engine_data = _require_dict(engine_data, path)
        _reject_unknown(engine_data, {'default_model', 'models'}, path)

        if 'models' not in engine_data:
            raise ValueError(f"Missing required 'models' in {path}")
        models_data = _require_dict(engine_data['models'], f"{path}.models")
        if not models_data:
            raise ValueError(f"'models' in {path} cannot be empty")

        models = {
            str(model): _parse_model_pricing(rates, f"{path}.models.{model}")
            for model, rates in models_data.items()
        }

        default_model = engine_data.get('default_model')
        if default_model is None:
            default_model = next(iter(models))
        if not isinstance(default_model, str):
            raise ValueError(f"'default_model' in {path} must be a string")

        try:
            engines[str(engine_name).lower()] = EnginePricing(default_model=default_model, models=models)
        except ValueError as e:
            raise ValueError(f"Invalid {path}: {e}")

    return PricingTable(engines=engines, default_engine=DEFAULT_PRICING_TABLE.default_engine)


def _parse_model_pricing(data: Any, path: str) -> ModelPricing:
    rates = _require_dict(data, path)
    required = {'input', 'output', 'cache_write', 'cache_read'}
    _reject_unknown(rates, required, path)
    missing = required - set(rates.keys())
    if missing:
        raise ValueError(f"Missing rates in {path}: {sorted(missing)}")

    parsed = {}
    for name in sorted(required):
        value = rates[name]
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"'{name}' in {path} must be a number")
        try:
            parsed[name] = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"'{name}' in {path} must be a number")
        if not parsed[name].is_finite():
            raise ValueError(f"'{name}' in {path} must be a number")
        if parsed[name] < 0:
            raise ValueError(f"'{name}' in {path} cannot be negative")

    return ModelPricing(
        input_rate=parsed['input'],
        output_rate=parsed['output'],
        cache_write_rate=parsed['cache_write'],
        cache_read_rate=parsed['cache_read'],
    )


def _require_dict(value: Any, path: str) -> Dict:
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _reject_unknown(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    if value < 0:
        raise ValueError(f"'{path}' cannot be negative")
    return value


def _parse_float(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)
