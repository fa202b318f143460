"""Data models — all frozen (immutable).

Amounts are scaled integers: prices at 1e8, USD at 1e6, health factors at
1e18, ratios in bps.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SafetyLevel(str, Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class ProtectionKind(str, Enum):
    STOP_LOSS = "stop_loss"
    HEDGE = "hedge"


class Strategy(str, Enum):
    STOP_LOSS = "stop_loss"
    HEDGE = "hedge"


class PositionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PROTECTED = "PROTECTED"
    LIQUIDATED = "LIQUIDATED"
    DISABLED = "DISABLED"


class TriggerAction(str, Enum):
    NONE = "none"
    STOP_LOSS = "stop_loss"
    HEDGE = "hedge"


class HealthAction(str, Enum):
    NONE = "none"
    WARN = "warn"
    REDUCE = "reduce"
    EMERGENCY_CLOSE = "emergency_close"


class EventKind(str, Enum):
    PROTECTION_TRIGGERED = "ProtectionTriggered"
    VIRTUAL_POSITION_OPENED = "VirtualPositionOpened"
    PERFORMANCE_FEE_CHARGED = "PerformanceFeeCharged"
    NO_VALUE_CREATED = "NoValueCreated"
    SETTLEMENT_LAPSED = "SettlementLapsed"
    HEALTH_FACTOR_WARNING = "HealthFactorWarning"
    HEDGE_REDUCED = "HedgeReduced"
    HEDGE_EMERGENCY_CLOSED = "HedgeEmergencyClosed"
    POSITION_LIQUIDATED = "PositionLiquidated"
    POSITION_DISABLED = "PositionDisabled"
    FEE_RATE_CHANGED = "FeeRateChanged"


@dataclass(frozen=True)
class OracleQuote:
    """Latest oracle price (1e8) and its publish time (unix seconds)."""

    price: int
    updated_at: int


@dataclass(frozen=True)
class PriceSafetyReport:
    oracle_price: int
    twap_price: int
    spot_price: int
    deviation_bps: int
    level: SafetyLevel
    timestamp: int


@dataclass(frozen=True)
class HedgeSnapshot:
    """State of the hedge at the moment protection fired."""

    borrowed_asset: str
    borrowed_amount: int
    sold_amount: int
    hedge_ratio_bps: int
    health_factor_at_open: int


@dataclass(frozen=True)
class VirtualPosition:
    """Counterfactual "no protection" snapshot taken when protection fires.

    ``entry_price`` is the price IL is measured from (the registration
    price); ``snapshot_price`` is the price at T0. The T1 fields stay ``None``
    until the position is settled.
    """

    position_id: str
    owner: str
    snapshot_time: int
    entry_price: int
    snapshot_price: int
    snapshot_il_bps: int
    snapshot_lp_value: int
    protection_kind: ProtectionKind
    hedge: HedgeSnapshot | None = None
    settlement_time: int | None = None
    final_il_bps: int | None = None
    avoided_loss: int | None = None
    performance_fee: int | None = None
    is_settled: bool = False


@dataclass(frozen=True)
class Position:
    """Position metadata as supplied by the registry collaborator."""

    position_id: str
    owner: str
    feed_id: str
    pool_id: str
    entry_price: int
    lp_value: int
    threshold_bps: int
    strategy: Strategy
    asset_x: str = ""
    asset_y: str = ""
    weight_x_bps: int = 5_000
    weight_y_bps: int = 5_000
    decimals_x: int = 18
    decimals_y: int = 6
    hedge_ratio_bps: int = 10_000
    lending_account: str = ""
    quote_feed_id: str | None = None
    status: PositionStatus = PositionStatus.ACTIVE
    last_operation_time: int = 0


@dataclass(frozen=True)
class DeductionResult:
    position_id: str
    amount: int
    remaining_balance: int


@dataclass(frozen=True)
class SettlementResult:
    position_id: str
    final_il_bps: int
    avoided_loss: int
    performance_fee: int
    fee_rate_bps: int
    settled: VirtualPosition
    deduction: DeductionResult | None = None
    lapsed: bool = False


@dataclass(frozen=True)
class TriggerOutcome:
    position_id: str
    action: TriggerAction
    reason: str = ""
    il_bps: int | None = None
    price: int | None = None
    report: PriceSafetyReport | None = None
    virtual_position: VirtualPosition | None = None


@dataclass(frozen=True)
class HealthOutcome:
    position_id: str
    action: HealthAction
    health_factor: int | None = None
    amount: int = 0
    reason: str = ""


@dataclass(frozen=True)
class RiskReport:
    il_bps: int
    var_95: int
    cvar_95: int
    risk_score: int


@dataclass(frozen=True)
class Event:
    kind: EventKind
    position_id: str
    timestamp: int
    data: dict[str, Any] = field(default_factory=dict)
