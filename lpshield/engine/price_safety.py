"""Oracle price-safety verification — staleness check and TWAP circuit breaker."""
from __future__ import annotations

import logging

from ..config import RiskConfig
from ..errors import PriceManipulationDetected, StalePriceError
from ..fixed_point import price_deviation_bps
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.twap_source import TwapSource
from ..models import PriceSafetyReport, SafetyLevel

logger = logging.getLogger(__name__)


def classify_deviation(deviation_bps: int, config: RiskConfig) -> SafetyLevel:
    if deviation_bps < config.warning_deviation_bps:
        return SafetyLevel.SAFE
    if deviation_bps < config.critical_deviation_bps:
        return SafetyLevel.WARNING
    return SafetyLevel.CRITICAL


def verify_price_safety(
    oracle: PriceOracle,
    feed_id: str,
    twap_source: TwapSource,
    pool_id: str,
    now: int,
    config: RiskConfig | None = None,
) -> tuple[int, PriceSafetyReport]:
    """Cross-check the oracle against the pool TWAP and return a trusted price.

    The long-window TWAP is returned rather than the oracle price since it
    cannot be moved within a single block. A CRITICAL deviation aborts the
    caller's operation with :class:`PriceManipulationDetected`.
    """
    config = config or RiskConfig()

    quote = oracle.latest_price(feed_id)
    age = now - quote.updated_at
    if age >= config.max_price_age_seconds:
        raise StalePriceError(
            f"Oracle price for {feed_id} is {age}s old"
            f" (max {config.max_price_age_seconds - 1}s)"
        )

    twap_price = twap_source.twap_price(pool_id, config.twap_window_seconds)
    spot_price = twap_source.twap_price(pool_id, config.spot_window_seconds)

    deviation = price_deviation_bps(quote.price, twap_price)
    level = classify_deviation(deviation, config)
    report = PriceSafetyReport(
        oracle_price=quote.price,
        twap_price=twap_price,
        spot_price=spot_price,
        deviation_bps=deviation,
        level=level,
        timestamp=now,
    )

    if level is SafetyLevel.CRITICAL:
        logger.error(
            "Price manipulation suspected on %s: oracle=%d twap=%d deviation=%d bps",
            feed_id, quote.price, twap_price, deviation,
        )
        raise PriceManipulationDetected(
            f"Oracle/TWAP deviation {deviation} bps on {feed_id}", report
        )
    if level is SafetyLevel.WARNING:
        logger.warning(
            "Oracle/TWAP deviation %d bps on %s (oracle=%d twap=%d)",
            deviation, feed_id, quote.price, twap_price,
        )

    return twap_price, report
