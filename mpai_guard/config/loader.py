"""
Configuration management and loading.

Handles application settings from a YAML file and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from mpai_guard.core.guardrails import LimitPolicy
from mpai_guard.core.pricing import ModelPricing
from mpai_guard.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class CostLimitsConfig:
    """Spend ceilings and the switch that enables pre-flight checks."""
    enabled: bool = False
    max_cost_per_request: float = 0.50
    max_cost_per_user_per_day: float = 10.00
    max_cost_total_per_day: float = 100.00
    default_monthly_limit_per_user: float = 5.00

    def __post_init__(self):
        """Validate limit amounts are positive."""
        for name in (
            "max_cost_per_request",
            "max_cost_per_user_per_day",
            "max_cost_total_per_day",
            "default_monthly_limit_per_user",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    def to_policy(self) -> LimitPolicy:
        return LimitPolicy(
            max_cost_per_request=self.max_cost_per_request,
            max_cost_per_user_per_day=self.max_cost_per_user_per_day,
            max_cost_total_per_day=self.max_cost_total_per_day,
            default_monthly_limit_per_user=self.default_monthly_limit_per_user,
        )


@dataclass(frozen=True)
class PricingConfig:
    model: str = "gpt-4o"
    input_cost_per_million: float = 3.00
    output_cost_per_million: float = 15.00
    output_token_budget: int = 2000

    def __post_init__(self):
        if not self.model or not self.model.strip():
            raise ValueError("model cannot be empty")
        if self.input_cost_per_million < 0:
            raise ValueError("input_cost_per_million must be >= 0")
        if self.output_cost_per_million < 0:
            raise ValueError("output_cost_per_million must be >= 0")
        if self.output_token_budget <= 0:
            raise ValueError("output_token_budget must be > 0")

    def to_pricing(self) -> ModelPricing:
        return ModelPricing.from_floats(self.input_cost_per_million, self.output_cost_per_million)


@dataclass(frozen=True)
class ContextConfig:
    max_exchanges: int = 10

    def __post_init__(self):
        if self.max_exchanges < 0:
            raise ValueError("max_exchanges must be >= 0")


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = DEFAULT_DB_PATH
    exchange_ttl_days: int = 30

    def __post_init__(self):
        if self.exchange_ttl_days <= 0:
            raise ValueError("exchange_ttl_days must be > 0")


@dataclass(frozen=True)
class AnalysisConfig:
    auto_synthesis_all: bool = False


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    cost_limits: CostLimitsConfig = field(default_factory=CostLimitsConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)


# section name -> (dataclass, {key: accepted python types})
_SECTIONS: Dict[str, Tuple[type, Dict[str, Tuple[type, ...]]]] = {
    "cost_limits": (CostLimitsConfig, {
        "enabled": (bool,),
        "max_cost_per_request": (int, float),
        "max_cost_per_user_per_day": (int, float),
        "max_cost_total_per_day": (int, float),
        "default_monthly_limit_per_user": (int, float),
    }),
    "pricing": (PricingConfig, {
        "model": (str,),
        "input_cost_per_million": (int, float),
        "output_cost_per_million": (int, float),
        "output_token_budget": (int,),
    }),
    "context": (ContextConfig, {"max_exchanges": (int,)}),
    "storage": (StorageConfig, {"db_path": (str,), "exchange_ttl_days": (int,)}),
    "analysis": (AnalysisConfig, {"auto_synthesis_all": (bool,)}),
}

# env var -> (section, key)
_ENV_FLOATS = {
    "MAX_COST_PER_REQUEST": ("cost_limits", "max_cost_per_request"),
    "MAX_COST_PER_USER_PER_DAY": ("cost_limits", "max_cost_per_user_per_day"),
    "MAX_COST_TOTAL_PER_DAY": ("cost_limits", "max_cost_total_per_day"),
    "DEFAULT_MONTHLY_LIMIT_PER_USER": ("cost_limits", "default_monthly_limit_per_user"),
}
_ENV_STRINGS = {
    "MPAI_MODEL": ("pricing", "model"),
    "MPAI_DB_PATH": ("storage", "db_path"),
}


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load and validate configuration.

    Strict validation ensures no silent misconfigurations that could
    lead to unexpected cost overruns.

    Args:
        path: Path to YAML configuration file; ``None`` uses defaults
        env: Environment to read overrides from (defaults to os.environ)

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        raw = _read_yaml(path)

    sections: Dict[str, Dict[str, Any]] = {}
    for name, data in raw.items():
        sections[name] = dict(data)

    _apply_env_overrides(sections, os.environ if env is None else env)

    built = {}
    for name, (cls, schema) in _SECTIONS.items():
        built[name] = _parse_section(cls, schema, sections.get(name, {}), name)
    return AppConfig(**built)


def _read_yaml(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping of sections")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    for name, data in raw_config.items():
        if data is None:
            raw_config[name] = {}
        elif not isinstance(data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
    return raw_config


def _parse_section(cls, schema: Dict[str, Tuple[type, ...]], data: Dict[str, Any], path: str):
    """Validate one section's keys and value types and build its dataclass.

    Raises:
        ValueError: If a key is unknown, a type is wrong, or a value is invalid
    """
    unknown_keys = set(data.keys()) - set(schema)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values = {}
    for key, value in data.items():
        accepted = schema[key]
        # bool is an int subclass; reject it for numeric fields
        if isinstance(value, bool) and bool not in accepted:
            raise ValueError(f"'{key}' in {path} must be {_type_names(accepted)}")
        if not isinstance(value, accepted):
            raise ValueError(f"'{key}' in {path} must be {_type_names(accepted)}")
        values[key] = float(value) if float in accepted and not isinstance(value, bool) else value

    try:
        return cls(**values)
    except ValueError as e:
        raise ValueError(f"Invalid {path}: {e}")


def _type_names(types: Tuple[type, ...]) -> str:
    return " or ".join(t.__name__ for t in types)


def _apply_env_overrides(sections: Dict[str, Dict[str, Any]], env: Mapping[str, str]) -> None:
    if "COST_LIMITS_ENABLED" in env:
        sections.setdefault("cost_limits", {})["enabled"] = env["COST_LIMITS_ENABLED"] == "true"

    for var, (section, key) in _ENV_FLOATS.items():
        raw = env.get(var)
        if raw is None:
            continue
        try:
            value = float(raw)
        except ValueError:
            continue  # unparseable values keep the file/default value
        if value:
            sections.setdefault(section, {})[key] = value

    for var, (section, key) in _ENV_STRINGS.items():
        raw = env.get(var)
        if raw:
            sections.setdefault(section, {})[key] = raw


def with_cost_limits_enabled(config: AppConfig, enabled: bool = True) -> AppConfig:
    """Copy of ``config`` with the cost-limit switch set."""
    return replace(config, cost_limits=replace(config.cost_limits, enabled=enabled))
