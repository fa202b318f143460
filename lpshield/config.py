"""Engine configuration: thresholds, timings, access lists and oracle feeds.

Values come from ``config.yaml`` with ``${VAR}`` references resolved from
the environment (and a local ``.env``). Health factors are written as plain
decimals in YAML and held as 1e18-scaled integers.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeVar

import yaml
from dotenv import load_dotenv

from .fixed_point import BPS_SCALE, HF_SCALE, to_scaled

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_DEFAULT_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

_HF_FIELDS = frozenset({"hf_warning", "hf_reduce", "hf_emergency"})


@dataclass(frozen=True)
class RiskConfig:
    max_price_age_seconds: int = 60
    twap_window_seconds: int = 600
    spot_window_seconds: int = 60
    warning_deviation_bps: int = 200
    critical_deviation_bps: int = 500


@dataclass(frozen=True)
class TriggerConfig:
    min_interval_seconds: int = 3_600
    hf_warning: int = 15 * HF_SCALE // 10
    hf_reduce: int = 13 * HF_SCALE // 10
    hf_emergency: int = 115 * HF_SCALE // 100
    reduce_fraction_bps: int = 3_000


@dataclass(frozen=True)
class SettlementConfig:
    period_seconds: int = 86_400
    window_seconds: int = 7 * 86_400
    fee_rate_bps: int = 2_500


@dataclass(frozen=True)
class AccessConfig:
    keepers: tuple[str, ...] = ()
    governors: tuple[str, ...] = ()


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    risk: RiskConfig = field(default_factory=RiskConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)


_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Resolve ${VAR} in every string of a parsed YAML tree; unset vars become ""."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------


def _int_section(
    cls: type[_T], raw: dict[str, Any], hf_fields: frozenset[str] = frozenset()
) -> _T:
    """Build an all-integer section; keys absent from YAML keep their defaults."""
    values: dict[str, int] = {}
    for f in fields(cls):  # type: ignore[arg-type]
        if f.name not in raw:
            continue
        value = raw[f.name]
        values[f.name] = to_scaled(value, HF_SCALE) if f.name in hf_fields else int(value)
    return cls(**values)


def _build_access(raw: dict[str, Any]) -> AccessConfig:
    # Unset ${VAR} references interpolate to "" and are dropped.
    return AccessConfig(
        keepers=tuple(k for k in raw.get("keepers", None) or [] if k),
        governors=tuple(g for g in raw.get("governors", None) or [] if g),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth = raw.get("pyth") or {}
    feeds = {
        str(symbol): str(feed_id)
        for symbol, feed_id in (pyth.get("feeds") or {}).items()
    }
    return PriceOracleConfig(
        provider=raw.get("provider", PriceOracleConfig.provider),
        pyth=PythConfig(
            hermes_url=pyth.get("hermes_url", PythConfig.hermes_url), feeds=feeds
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Read, interpolate and validate the engine configuration.

    Without *config_path*, ``config.yaml`` next to the package directory is
    used. Raises ``FileNotFoundError`` for a missing file and ``ValueError``
    for inconsistent values.
    """
    load_dotenv()

    path = Path(config_path) if config_path is not None else _DEFAULT_PATH
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = _interpolate_env(yaml.safe_load(path.read_text()) or {})

    cfg = AppConfig(
        risk=_int_section(RiskConfig, raw.get("risk") or {}),
        trigger=_int_section(TriggerConfig, raw.get("trigger") or {}, _HF_FIELDS),
        settlement=_int_section(SettlementConfig, raw.get("settlement") or {}),
        access=_build_access(raw.get("access") or {}),
        price_oracle=_build_price_oracle(raw.get("price_oracle") or {}),
    )

    _validate(cfg)
    logger.info("Loaded configuration from %s", path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    risk = cfg.risk
    if risk.max_price_age_seconds <= 0:
        raise ValueError("risk.max_price_age_seconds must be positive")
    if risk.twap_window_seconds <= 0 or risk.spot_window_seconds <= 0:
        raise ValueError("TWAP windows must be positive")
    if not 0 < risk.warning_deviation_bps < risk.critical_deviation_bps:
        raise ValueError(
            "Deviation tiers must satisfy 0 < warning_deviation_bps < critical_deviation_bps"
        )

    trigger = cfg.trigger
    if trigger.min_interval_seconds < 0:
        raise ValueError("trigger.min_interval_seconds must not be negative")
    if not trigger.hf_warning > trigger.hf_reduce > trigger.hf_emergency > 0:
        raise ValueError(
            "Health factor tiers must satisfy hf_warning > hf_reduce > hf_emergency > 0"
        )
    if not 0 < trigger.reduce_fraction_bps <= BPS_SCALE:
        raise ValueError(f"trigger.reduce_fraction_bps must be in (0, {BPS_SCALE}]")

    settlement = cfg.settlement
    if settlement.period_seconds <= 0:
        raise ValueError("settlement.period_seconds must be positive")
    if settlement.window_seconds < 0:
        raise ValueError("settlement.window_seconds must not be negative")
    if not 0 <= settlement.fee_rate_bps <= BPS_SCALE:
        raise ValueError(f"settlement.fee_rate_bps must be in [0, {BPS_SCALE}]")
