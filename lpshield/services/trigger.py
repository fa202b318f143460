"""Trigger decisions — when protection fires and how a hedge is kept solvent.

Position lifecycle::

    ACTIVE ──trigger──> PROTECTED ──> LIQUIDATED
       ^                  │   │
       └─emergency close──┘   └──> DISABLED
    ACTIVE ──owner──> DISABLED

Every public method is one atomic operation: it reads what it needs
(oracle, TWAP, health factor), performs collaborator calls that can fail,
and only then records state.
"""
from __future__ import annotations

import logging
import threading
from typing import Sequence

from ..config import RiskConfig, TriggerConfig
from ..engine.price_safety import verify_price_safety
from ..engine.risk import build_risk_report, calculate_delta, calculate_il
from ..errors import (
    AlreadyExistsError,
    InvalidTransitionError,
    NotFoundError,
    StalePriceError,
    UnauthorizedError,
)
from ..fixed_point import BPS_SCALE, HF_SCALE, PRICE_SCALE, mul_div
from ..interfaces.authorizer import Authorizer
from ..interfaces.events import EventSink
from ..interfaces.executor import ProtectionExecutor
from ..interfaces.lending import LendingProtocol
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.registry import PositionRegistry
from ..interfaces.twap_source import TwapSource
from ..models import (
    Event,
    EventKind,
    HealthAction,
    HealthOutcome,
    HedgeSnapshot,
    Position,
    PositionStatus,
    ProtectionKind,
    RiskReport,
    Strategy,
    TriggerAction,
    TriggerOutcome,
)
from .settlement import SettlementLedger

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[PositionStatus, frozenset[PositionStatus]] = {
    PositionStatus.ACTIVE: frozenset({PositionStatus.PROTECTED, PositionStatus.DISABLED}),
    PositionStatus.PROTECTED: frozenset(
        {PositionStatus.ACTIVE, PositionStatus.LIQUIDATED, PositionStatus.DISABLED}
    ),
    PositionStatus.LIQUIDATED: frozenset(),
    PositionStatus.DISABLED: frozenset(),
}


def check_transition(current: PositionStatus, target: PositionStatus) -> None:
    if target not in _TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move from {current.value} to {target.value}")


def health_action(health_factor: int, config: TriggerConfig) -> HealthAction:
    """Map a health factor (1e18) to the action its tier calls for."""
    if health_factor > config.hf_warning:
        return HealthAction.NONE
    if health_factor > config.hf_reduce:
        return HealthAction.WARN
    if health_factor > config.hf_emergency:
        return HealthAction.REDUCE
    return HealthAction.EMERGENCY_CLOSE


class TriggerService:
    """Evaluates positions against their thresholds and acts on them."""

    def __init__(
        self,
        registry: PositionRegistry,
        ledger: SettlementLedger,
        oracle: PriceOracle,
        twap_source: TwapSource,
        lending: LendingProtocol,
        executor: ProtectionExecutor,
        authorizer: Authorizer,
        events: EventSink,
        trigger_config: TriggerConfig | None = None,
        risk_config: RiskConfig | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._oracle = oracle
        self._twap = twap_source
        self._lending = lending
        self._executor = executor
        self._authorizer = authorizer
        self._events = events
        self._config = trigger_config or TriggerConfig()
        self._risk_config = risk_config or RiskConfig()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_keeper(self, caller: str, position_id: str) -> None:
        if not self._authorizer.is_keeper(caller, position_id):
            raise UnauthorizedError(f"{caller} is not a keeper for {position_id}")

    def _load(self, position_id: str) -> Position:
        position = self._registry.get_position(position_id)
        if position is None:
            raise NotFoundError(f"Unknown position {position_id}")
        return position

    def _emit(
        self, kind: EventKind, position_id: str, now: int, **data: object
    ) -> None:
        # State is already committed; a failing sink must not fail the operation.
        try:
            self._events.emit(
                Event(kind=kind, position_id=position_id, timestamp=now, data=data)
            )
        except Exception as e:
            logger.error("Event sink failed for %s %s: %s", kind.value, position_id, e)

    def _quote_price(self, position: Position, now: int) -> int:
        """USD price (1e8) of asset Y; a stable quote asset when no feed is set."""
        if position.quote_feed_id is None:
            return PRICE_SCALE
        quote = self._oracle.latest_price(position.quote_feed_id)
        age = now - quote.updated_at
        if age >= self._risk_config.max_price_age_seconds:
            raise StalePriceError(
                f"Oracle price for {position.quote_feed_id} is {age}s old"
            )
        return quote.price

    # ------------------------------------------------------------------
    # Protection trigger
    # ------------------------------------------------------------------

    def check_and_trigger(
        self, caller: str, position_id: str, now: int
    ) -> TriggerOutcome:
        """Fire protection if the position's IL has crossed its threshold."""
        self._require_keeper(caller, position_id)

        with self._lock:
            position = self._load(position_id)

            if position.status is not PositionStatus.ACTIVE:
                return TriggerOutcome(
                    position_id, TriggerAction.NONE, reason=f"status {position.status.value}"
                )
            next_allowed = position.last_operation_time + self._config.min_interval_seconds
            if now < next_allowed:
                return TriggerOutcome(
                    position_id,
                    TriggerAction.NONE,
                    reason=f"cooldown until {next_allowed}",
                )

            price, report = verify_price_safety(
                self._oracle,
                position.feed_id,
                self._twap,
                position.pool_id,
                now,
                self._risk_config,
            )
            il_bps = calculate_il(position.entry_price, price)
            if il_bps < position.threshold_bps:
                logger.debug(
                    "%s below threshold: il=%d bps threshold=%d bps",
                    position_id, il_bps, position.threshold_bps,
                )
                return TriggerOutcome(
                    position_id,
                    TriggerAction.NONE,
                    reason="below threshold",
                    il_bps=il_bps,
                    price=price,
                    report=report,
                )

            if self._ledger.has_open(position_id):
                raise AlreadyExistsError(
                    f"Virtual position already open for {position_id}"
                )

            logger.info(
                "Protection triggered for %s: il=%d bps >= %d bps, strategy=%s",
                position_id, il_bps, position.threshold_bps, position.strategy.value,
            )

            hedge: HedgeSnapshot | None = None
            if position.strategy is Strategy.HEDGE:
                hedge = self._open_hedge(position, price, now)
                kind, action = ProtectionKind.HEDGE, TriggerAction.HEDGE
            else:
                self._executor.execute_stop_loss(position, price)
                kind, action = ProtectionKind.STOP_LOSS, TriggerAction.STOP_LOSS

            vp = self._ledger.open_virtual_position(
                caller,
                position.owner,
                position_id,
                entry_price=position.entry_price,
                t0_price=price,
                t0_il_bps=il_bps,
                t0_lp_value=position.lp_value,
                protection_kind=kind,
                now=now,
                hedge=hedge,
            )
            self._registry.set_status(position_id, PositionStatus.PROTECTED, now)
            self._registry.record_operation(position_id, now)

        self._emit(
            EventKind.PROTECTION_TRIGGERED,
            position_id,
            now,
            strategy=position.strategy.value,
            il_bps=il_bps,
            price=price,
            deviation_bps=report.deviation_bps,
        )
        return TriggerOutcome(
            position_id,
            action,
            reason="threshold crossed",
            il_bps=il_bps,
            price=price,
            report=report,
            virtual_position=vp,
        )

    def _open_hedge(self, position: Position, price: int, now: int) -> HedgeSnapshot:
        """Borrow and sell the X-side delta scaled by the hedge ratio."""
        price_y = self._quote_price(position, now)
        price_x = mul_div(price, price_y, PRICE_SCALE)
        amount_x, _ = calculate_delta(
            position.lp_value,
            price_x,
            price_y,
            position.weight_x_bps,
            position.weight_y_bps,
            position.decimals_x,
            position.decimals_y,
        )
        borrow_amount = mul_div(amount_x, position.hedge_ratio_bps, BPS_SCALE)
        sold = self._executor.open_hedge(position, borrow_amount)
        health_factor = self._lending.health_factor(position.lending_account)

        logger.info(
            "Hedge opened for %s: borrowed %d %s, sold for %d, hf=%d",
            position.position_id, borrow_amount, position.asset_x, sold, health_factor,
        )
        return HedgeSnapshot(
            borrowed_asset=position.asset_x,
            borrowed_amount=borrow_amount,
            sold_amount=sold,
            hedge_ratio_bps=position.hedge_ratio_bps,
            health_factor_at_open=health_factor,
        )

    # ------------------------------------------------------------------
    # Health-factor management
    # ------------------------------------------------------------------

    def check_health(self, caller: str, position_id: str, now: int) -> HealthOutcome:
        """Read the hedge's health factor once and act on that reading."""
        self._require_keeper(caller, position_id)

        with self._lock:
            position = self._load(position_id)
            if (
                position.status is not PositionStatus.PROTECTED
                or position.strategy is not Strategy.HEDGE
            ):
                return HealthOutcome(
                    position_id, HealthAction.NONE, reason="no open hedge"
                )

            hf = self._lending.health_factor(position.lending_account)
            action = health_action(hf, self._config)

            if action is HealthAction.NONE:
                return HealthOutcome(position_id, action, health_factor=hf)

            if action is HealthAction.WARN:
                logger.warning("Health factor %d on %s in warning tier", hf, position_id)
                self._emit(EventKind.HEALTH_FACTOR_WARNING, position_id, now, health_factor=hf)
                return HealthOutcome(position_id, action, health_factor=hf)

            if action is HealthAction.REDUCE:
                repaid = self._executor.reduce_hedge(
                    position, self._config.reduce_fraction_bps
                )
                self._registry.record_operation(position_id, now)
                logger.warning(
                    "Reduced hedge on %s by %d bps (repaid %d) at hf=%d",
                    position_id, self._config.reduce_fraction_bps, repaid, hf,
                )
                self._emit(
                    EventKind.HEDGE_REDUCED,
                    position_id,
                    now,
                    health_factor=hf,
                    fraction_bps=self._config.reduce_fraction_bps,
                    repaid=repaid,
                )
                return HealthOutcome(position_id, action, health_factor=hf, amount=repaid)

            check_transition(position.status, PositionStatus.ACTIVE)
            self._executor.close_hedge(position)
            self._registry.set_status(position_id, PositionStatus.ACTIVE, now)
            self._registry.record_operation(position_id, now)

        logger.error("Emergency-closed hedge on %s at hf=%d", position_id, hf)
        self._emit(EventKind.HEDGE_EMERGENCY_CLOSED, position_id, now, health_factor=hf)
        return HealthOutcome(position_id, HealthAction.EMERGENCY_CLOSE, health_factor=hf)

    def mark_liquidated(self, caller: str, position_id: str, now: int) -> None:
        """Record that the lending protocol liquidated the hedge's collateral."""
        self._require_keeper(caller, position_id)

        with self._lock:
            position = self._load(position_id)
            check_transition(position.status, PositionStatus.LIQUIDATED)
            hf = self._lending.health_factor(position.lending_account)
            if hf >= HF_SCALE:
                raise InvalidTransitionError(
                    f"{position_id} is solvent (hf={hf}); not liquidated"
                )
            self._registry.set_status(position_id, PositionStatus.LIQUIDATED, now)

        logger.error("Position %s liquidated at hf=%d", position_id, hf)
        self._emit(EventKind.POSITION_LIQUIDATED, position_id, now, health_factor=hf)

    def disable(self, caller: str, position_id: str, now: int) -> None:
        """Owner switches protection off for good."""
        with self._lock:
            position = self._load(position_id)
            if caller.lower() != position.owner.lower():
                raise UnauthorizedError(f"{caller} does not own {position_id}")
            check_transition(position.status, PositionStatus.DISABLED)
            self._registry.set_status(position_id, PositionStatus.DISABLED, now)

        logger.info("Position %s disabled by owner", position_id)
        self._emit(EventKind.POSITION_DISABLED, position_id, now)

    # ------------------------------------------------------------------
    # Read-only assessment
    # ------------------------------------------------------------------

    def assess(
        self,
        position_id: str,
        sorted_scenarios: Sequence[int],
        volatility_bps: int,
        now: int,
    ) -> RiskReport:
        """Current IL, VaR95/CVaR95 and risk score for a position."""
        position = self._load(position_id)
        price, _ = verify_price_safety(
            self._oracle,
            position.feed_id,
            self._twap,
            position.pool_id,
            now,
            self._risk_config,
        )
        il_bps = calculate_il(position.entry_price, price)

        health_factor: int | None = None
        if (
            position.strategy is Strategy.HEDGE
            and position.status is PositionStatus.PROTECTED
        ):
            health_factor = self._lending.health_factor(position.lending_account)

        return build_risk_report(
            position.lp_value,
            il_bps,
            position.threshold_bps,
            sorted_scenarios,
            volatility_bps,
            health_factor,
        )
