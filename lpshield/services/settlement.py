"""Counterfactual settlement ledger.

When protection fires, the ledger records what the position looked like with
no protection (a :class:`VirtualPosition`). Once the settlement period has
elapsed, a keeper settles it: IL is recomputed at the current price with the
same :func:`calculate_il` used at open, and a performance fee is charged only
on the loss the protection avoided.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace

from ..config import SettlementConfig
from ..engine.risk import calculate_il
from ..errors import (
    AlreadyExistsError,
    AlreadySettledError,
    InvalidParameterError,
    InvalidPriceError,
    NotFoundError,
    SettlementNotDueError,
    UnauthorizedError,
)
from ..fixed_point import BPS_SCALE, mul_div, narrow
from ..interfaces.authorizer import Authorizer
from ..interfaces.events import EventSink
from ..interfaces.payments import PaymentLedger
from ..models import (
    DeductionResult,
    Event,
    EventKind,
    HedgeSnapshot,
    ProtectionKind,
    SettlementResult,
    VirtualPosition,
)

logger = logging.getLogger(__name__)


class InMemoryVirtualPositionStore:
    """Keyed store of open virtual positions plus settled markers.

    Settled positions are deleted; only their ID is remembered so a repeated
    settle can be told apart from an unknown ID. The marker set therefore
    holds at most one entry per position ID ever opened, and reopening an ID
    clears its marker.
    """

    def __init__(self) -> None:
        self._open: dict[str, VirtualPosition] = {}
        self._settled: set[str] = set()

    def get(self, position_id: str) -> VirtualPosition | None:
        return self._open.get(position_id)

    def put(self, vp: VirtualPosition) -> None:
        self._open[vp.position_id] = vp
        self._settled.discard(vp.position_id)

    def remove_settled(self, position_id: str) -> None:
        del self._open[position_id]
        self._settled.add(position_id)

    def was_settled(self, position_id: str) -> bool:
        return position_id in self._settled

    def values(self) -> list[VirtualPosition]:
        return list(self._open.values())

    def __len__(self) -> int:
        return len(self._open)


class SettlementLedger:
    """Owns the open virtual positions and their exactly-once settlement."""

    def __init__(
        self,
        config: SettlementConfig,
        authorizer: Authorizer,
        payments: PaymentLedger,
        events: EventSink,
        store: InMemoryVirtualPositionStore | None = None,
    ) -> None:
        self._config = config
        self._authorizer = authorizer
        self._payments = payments
        self._events = events
        self._store = store if store is not None else InMemoryVirtualPositionStore()
        self._fee_rate_bps = config.fee_rate_bps
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    @property
    def fee_rate_bps(self) -> int:
        return self._fee_rate_bps

    def set_fee_rate(self, caller: str, fee_rate_bps: int, now: int = 0) -> None:
        """Change the protocol fee rate.

        Applies to every later settlement, including positions opened before
        the change.
        """
        if not self._authorizer.is_governor(caller):
            raise UnauthorizedError(f"{caller} may not change the fee rate")
        if not 0 <= fee_rate_bps <= BPS_SCALE:
            raise InvalidParameterError(
                f"Fee rate must be in [0, {BPS_SCALE}] bps (got {fee_rate_bps})"
            )
        with self._lock:
            previous = self._fee_rate_bps
            self._fee_rate_bps = fee_rate_bps
        logger.info("Fee rate changed %d -> %d bps by %s", previous, fee_rate_bps, caller)
        self._publish(
            Event(
                kind=EventKind.FEE_RATE_CHANGED,
                position_id="",
                timestamp=now,
                data={"previous_bps": previous, "fee_rate_bps": fee_rate_bps},
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, position_id: str) -> VirtualPosition | None:
        return self._store.get(position_id)

    def has_open(self, position_id: str) -> bool:
        return self._store.get(position_id) is not None

    def due_at(self, vp: VirtualPosition) -> int:
        return vp.snapshot_time + self._config.period_seconds

    def lapses_at(self, vp: VirtualPosition) -> int | None:
        if self._config.window_seconds == 0:
            return None
        return self.due_at(vp) + self._config.window_seconds

    def pending(self, now: int) -> list[VirtualPosition]:
        """Open virtual positions that can be settled at *now*, oldest first."""
        with self._lock:
            due = [vp for vp in self._store.values() if now >= self.due_at(vp)]
        return sorted(due, key=lambda vp: vp.snapshot_time)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _require_keeper(self, caller: str, position_id: str) -> None:
        if not self._authorizer.is_keeper(caller, position_id):
            raise UnauthorizedError(f"{caller} is not a keeper for {position_id}")

    def _publish(self, event: Event) -> None:
        # Called after the ledger has committed; a failing sink must not undo it.
        try:
            self._events.emit(event)
        except Exception as e:
            logger.error(
                "Event sink failed for %s %s: %s", event.kind.value, event.position_id, e
            )

    def open_virtual_position(
        self,
        caller: str,
        owner: str,
        position_id: str,
        entry_price: int,
        t0_price: int,
        t0_il_bps: int,
        t0_lp_value: int,
        protection_kind: ProtectionKind,
        now: int,
        hedge: HedgeSnapshot | None = None,
    ) -> VirtualPosition:
        """Record the no-protection snapshot verbatim."""
        self._require_keeper(caller, position_id)
        if entry_price <= 0 or t0_price <= 0:
            raise InvalidPriceError(
                f"Price must be positive (entry={entry_price}, t0={t0_price})"
            )
        if t0_lp_value < 0 or not 0 <= t0_il_bps <= BPS_SCALE:
            raise InvalidParameterError(
                f"Invalid snapshot for {position_id}: lp_value={t0_lp_value},"
                f" il={t0_il_bps} bps"
            )

        with self._lock:
            if self._store.get(position_id) is not None:
                raise AlreadyExistsError(
                    f"Virtual position already open for {position_id}"
                )
            vp = VirtualPosition(
                position_id=position_id,
                owner=owner,
                snapshot_time=now,
                entry_price=entry_price,
                snapshot_price=t0_price,
                snapshot_il_bps=t0_il_bps,
                snapshot_lp_value=t0_lp_value,
                protection_kind=protection_kind,
                hedge=hedge,
            )
            self._store.put(vp)

        logger.info(
            "Opened virtual position %s (%s): price=%d il=%d bps lp_value=%d",
            position_id, protection_kind.value, t0_price, t0_il_bps, t0_lp_value,
        )
        self._publish(
            Event(
                kind=EventKind.VIRTUAL_POSITION_OPENED,
                position_id=position_id,
                timestamp=now,
                data={
                    "protection": protection_kind.value,
                    "il_bps": t0_il_bps,
                    "lp_value": t0_lp_value,
                    "price": t0_price,
                },
            )
        )
        return vp

    def settle(
        self, caller: str, position_id: str, t1_price: int, now: int
    ) -> SettlementResult:
        """Compute avoided loss at *t1_price* and charge the performance fee.

        A failure from the payment collaborator leaves the virtual position
        in place so the settlement can be retried.
        """
        self._require_keeper(caller, position_id)

        with self._lock:
            vp = self._store.get(position_id)
            if vp is None:
                if self._store.was_settled(position_id):
                    raise AlreadySettledError(f"{position_id} is already settled")
                raise NotFoundError(f"No virtual position for {position_id}")
            if vp.is_settled:
                raise AlreadySettledError(f"{position_id} is already settled")

            due_at = self.due_at(vp)
            if now < due_at:
                raise SettlementNotDueError(
                    f"{position_id} settles at {due_at} ({due_at - now}s remaining)"
                )

            lapses_at = self.lapses_at(vp)
            if lapses_at is not None and now > lapses_at:
                return self._lapse(vp, now)

            final_il = calculate_il(vp.entry_price, t1_price)
            il_avoided = max(0, final_il - vp.snapshot_il_bps)
            avoided_loss = narrow(mul_div(il_avoided, vp.snapshot_lp_value, BPS_SCALE))
            fee_rate = self._fee_rate_bps
            fee = mul_div(avoided_loss, fee_rate, BPS_SCALE)

            deduction: DeductionResult | None = None
            if fee > 0:
                deduction = self._payments.deduct_fee(position_id, fee, vp.owner)

            settled = replace(
                vp,
                settlement_time=now,
                final_il_bps=final_il,
                avoided_loss=avoided_loss,
                performance_fee=fee,
                is_settled=True,
            )
            self._store.remove_settled(position_id)

        if fee > 0:
            logger.info(
                "Settled %s: il %d -> %d bps, avoided=%d fee=%d (%d bps)",
                position_id, vp.snapshot_il_bps, final_il, avoided_loss, fee, fee_rate,
            )
            kind = EventKind.PERFORMANCE_FEE_CHARGED
        else:
            logger.info(
                "Settled %s: il %d -> %d bps, no value created",
                position_id, vp.snapshot_il_bps, final_il,
            )
            kind = EventKind.NO_VALUE_CREATED
        self._publish(
            Event(
                kind=kind,
                position_id=position_id,
                timestamp=now,
                data={
                    "snapshot_il_bps": vp.snapshot_il_bps,
                    "final_il_bps": final_il,
                    "avoided_loss": avoided_loss,
                    "fee": fee,
                    "fee_rate_bps": fee_rate,
                },
            )
        )

        return SettlementResult(
            position_id=position_id,
            final_il_bps=final_il,
            avoided_loss=avoided_loss,
            performance_fee=fee,
            fee_rate_bps=fee_rate,
            settled=settled,
            deduction=deduction,
        )

    def _lapse(self, vp: VirtualPosition, now: int) -> SettlementResult:
        """Close a virtual position whose settlement window has passed; no fee."""
        settled = replace(
            vp,
            settlement_time=now,
            avoided_loss=0,
            performance_fee=0,
            is_settled=True,
        )
        self._store.remove_settled(vp.position_id)

        logger.warning(
            "Settlement window for %s lapsed at %s; no fee charged",
            vp.position_id, self.lapses_at(vp),
        )
        self._publish(
            Event(
                kind=EventKind.SETTLEMENT_LAPSED,
                position_id=vp.position_id,
                timestamp=now,
                data={"snapshot_time": vp.snapshot_time},
            )
        )
        return SettlementResult(
            position_id=vp.position_id,
            final_il_bps=vp.snapshot_il_bps,
            avoided_loss=0,
            performance_fee=0,
            fee_rate_bps=self._fee_rate_bps,
            settled=settled,
            lapsed=True,
        )
