"""Shared test fixtures, collaborator fakes and sample data."""
from __future__ import annotations

import textwrap
from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from lpshield.access import StaticAuthorizer
from lpshield.config import (
    AccessConfig,
    AppConfig,
    PriceOracleConfig,
    PythConfig,
    RiskConfig,
    SettlementConfig,
    TriggerConfig,
)
from lpshield.errors import InsufficientFundsError
from lpshield.models import (
    DeductionResult,
    Event,
    OracleQuote,
    Position,
    PositionStatus,
    Strategy,
)
from lpshield.oracles.quote_book import QuoteBook
from lpshield.services.settlement import SettlementLedger
from lpshield.services.trigger import TriggerService

NOW = 1_700_000_000
KEEPER = "0xKeeper"
GOVERNOR = "0xGovernor"
OWNER = "0xOwner"
STRANGER = "0xStranger"

USD = 1_000_000
PRICE = 100_000_000
HF = 10**18


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class RecordingEventSink:
    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list:
        return [e.kind for e in self.events]


class FailingEventSink(RecordingEventSink):
    """Records every event, then raises for kinds outside ``allowed``."""

    def __init__(self, allowed: tuple = ()) -> None:
        super().__init__()
        self.allowed = set(allowed)

    def emit(self, event: Event) -> None:
        super().emit(event)
        if event.kind not in self.allowed:
            raise RuntimeError(f"sink down: {event.kind.value}")


class FakePaymentLedger:
    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self.balances: dict[str, int] = dict(balances or {})
        self.calls: list[tuple[str, int, str]] = []

    def deduct_fee(self, position_id: str, amount_usd: int, payer: str) -> DeductionResult:
        balance = self.balances.get(position_id, 0)
        if balance < amount_usd:
            raise InsufficientFundsError(
                f"Balance {balance} cannot cover fee {amount_usd}"
            )
        self.calls.append((position_id, amount_usd, payer))
        self.balances[position_id] = balance - amount_usd
        return DeductionResult(position_id, amount_usd, self.balances[position_id])


class FakeTwapSource:
    """TWAP by pool, optionally overridden per window."""

    def __init__(self) -> None:
        self.prices: dict[tuple[str, int | None], int] = {}
        self.calls: list[tuple[str, int]] = []

    def set(self, pool_id: str, price: int, window: int | None = None) -> None:
        self.prices[(pool_id, window)] = price

    def twap_price(self, pool_id: str, window_seconds: int) -> int:
        self.calls.append((pool_id, window_seconds))
        if (pool_id, window_seconds) in self.prices:
            return self.prices[(pool_id, window_seconds)]
        return self.prices[(pool_id, None)]


class FakeLending:
    def __init__(self) -> None:
        self.health: dict[str, int] = {}
        self.calls: list[str] = []

    def health_factor(self, account: str) -> int:
        self.calls.append(account)
        return self.health[account]


class InMemoryRegistry:
    def __init__(self, *positions: Position) -> None:
        self.positions: dict[str, Position] = {p.position_id: p for p in positions}

    def add(self, position: Position) -> None:
        self.positions[position.position_id] = position

    def get_position(self, position_id: str) -> Position | None:
        return self.positions.get(position_id)

    def set_status(self, position_id: str, status: PositionStatus, now: int) -> None:
        self.positions[position_id] = replace(self.positions[position_id], status=status)

    def record_operation(self, position_id: str, now: int) -> None:
        self.positions[position_id] = replace(
            self.positions[position_id], last_operation_time=now
        )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def access_config() -> AccessConfig:
    return AccessConfig(keepers=(KEEPER,), governors=(GOVERNOR,))


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"ETH": "aaa111", "BTC": "bbb222", "USDC": "ccc333"},
    )


@pytest.fixture()
def sample_app_config(
    access_config: AccessConfig, sample_pyth_config: PythConfig
) -> AppConfig:
    return AppConfig(
        risk=RiskConfig(),
        trigger=TriggerConfig(),
        settlement=SettlementConfig(),
        access=access_config,
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
    )


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def authorizer(access_config: AccessConfig) -> StaticAuthorizer:
    return StaticAuthorizer(access_config)


@pytest.fixture()
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture()
def payments() -> FakePaymentLedger:
    return FakePaymentLedger({"pos-1": 1_000 * USD})


@pytest.fixture()
def oracle() -> QuoteBook:
    return QuoteBook({"ETH/USDC": OracleQuote(price=1_000 * PRICE, updated_at=NOW - 10)})


@pytest.fixture()
def twap() -> FakeTwapSource:
    source = FakeTwapSource()
    source.set("pool-eth-usdc", 1_000 * PRICE)
    return source


@pytest.fixture()
def lending() -> FakeLending:
    lending = FakeLending()
    lending.health["0xLendingAccount"] = 2 * HF
    return lending


@pytest.fixture()
def executor() -> MagicMock:
    executor = MagicMock()
    executor.open_hedge.return_value = 4_900 * USD
    executor.reduce_hedge.return_value = 1_500_000_000_000_000_000
    return executor


@pytest.fixture()
def ledger(
    authorizer: StaticAuthorizer,
    payments: FakePaymentLedger,
    events: RecordingEventSink,
) -> SettlementLedger:
    return SettlementLedger(SettlementConfig(), authorizer, payments, events)


# ---------------------------------------------------------------------------
# Position fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def stop_loss_position() -> Position:
    return Position(
        position_id="pos-1",
        owner=OWNER,
        feed_id="ETH/USDC",
        pool_id="pool-eth-usdc",
        entry_price=2_000 * PRICE,
        lp_value=10_000 * USD,
        threshold_bps=500,
        strategy=Strategy.STOP_LOSS,
        asset_x="ETH",
        asset_y="USDC",
        lending_account="0xLendingAccount",
    )


@pytest.fixture()
def hedge_position(stop_loss_position: Position) -> Position:
    return replace(stop_loss_position, strategy=Strategy.HEDGE)


@pytest.fixture()
def registry(stop_loss_position: Position) -> InMemoryRegistry:
    return InMemoryRegistry(stop_loss_position)


@pytest.fixture()
def trigger_service(
    registry: InMemoryRegistry,
    ledger: SettlementLedger,
    oracle: QuoteBook,
    twap: FakeTwapSource,
    lending: FakeLending,
    executor: MagicMock,
    authorizer: StaticAuthorizer,
    events: RecordingEventSink,
) -> TriggerService:
    return TriggerService(
        registry=registry,
        ledger=ledger,
        oracle=oracle,
        twap_source=twap,
        lending=lending,
        executor=executor,
        authorizer=authorizer,
        events=events,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    risk:
      max_price_age_seconds: 45
      twap_window_seconds: 900
      spot_window_seconds: 30
      warning_deviation_bps: 150
      critical_deviation_bps: 400
    trigger:
      min_interval_seconds: 1800
      hf_warning: 1.6
      hf_reduce: 1.35
      hf_emergency: 1.15
      reduce_fraction_bps: 2500
    settlement:
      period_seconds: 86400
      window_seconds: 259200
      fee_rate_bps: 2000
    access:
      keepers: ["0xK1", "0xK2"]
      governors: ["0xG"]
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {ETH: "aaa", BTC: "bbb"}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
