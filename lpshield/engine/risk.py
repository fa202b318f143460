"""Pure risk functions — impermanent loss, hedge sizing, VaR/CVaR, risk score.

No I/O and no shared state; every function maps scaled integers to scaled
integers.
"""
from __future__ import annotations

from math import isqrt
from typing import Sequence

from ..errors import (
    ArithmeticOverflowError,
    DivisionByZeroError,
    InvalidParameterError,
    InvalidPriceError,
)
from ..fixed_point import (
    BPS_SCALE,
    HF_SCALE,
    PRICE_SCALE,
    RATIO_SCALE,
    U128_MAX,
    USD_SCALE,
    average,
    mul_div,
    narrow,
    normalized_score,
    percentile_index,
)
from ..models import RiskReport

CONFIDENCE_LEVELS = frozenset({90, 95, 99})

# sqrt(P) is taken at 1e16 input scale (1e8 output) then rescaled to 1e18.
_SQRT_INPUT_DIVISOR = 10**2
_SQRT_RESCALE = 10**10

# Square-root-of-time baseline: sqrt(24h * 100).
_BASELINE_HOURS_X100 = 2_400

_WEIGHT_IL = 30
_WEIGHT_VAR = 25
_WEIGHT_CVAR = 25
_WEIGHT_VOLATILITY = 10
_WEIGHT_HEALTH = 10

_VAR_BENCHMARK_BPS = 500
_CVAR_BENCHMARK_BPS = 1_000
_VOLATILITY_BENCHMARK_BPS = 1_000


def _sqrt_ratio(ratio: int) -> int:
    """sqrt of a 1e18-scaled ratio, returned at 1e18 scale (floored)."""
    return isqrt(ratio // _SQRT_INPUT_DIVISOR) * _SQRT_RESCALE


def calculate_il(initial_price: int, current_price: int) -> int:
    """Impermanent loss of a constant-product position, in bps.

    ``IL = (1 + P - 2*sqrt(P)) / (1 + P)`` with ``P = current / initial``,
    which is ``1 - 2*sqrt(P)/(1+P)`` rearranged so that no intermediate goes
    negative. The square root is under-estimated by less than 1e-8, so the
    result can only be biased upward by a fraction of a bps before flooring.
    """
    if initial_price <= 0 or current_price <= 0:
        raise InvalidPriceError(
            f"Price must be positive (initial={initial_price}, current={current_price})"
        )
    if initial_price == current_price:
        return 0

    ratio = narrow(mul_div(current_price, RATIO_SCALE, initial_price), U128_MAX)
    two_sqrt = 2 * _sqrt_ratio(ratio)
    one_plus = RATIO_SCALE + ratio

    # AM-GM: 1 + P >= 2*sqrt(P)
    if one_plus < two_sqrt:
        raise ArithmeticOverflowError(
            f"IL invariant violated: 1+P={one_plus} < 2*sqrt(P)={two_sqrt}"
        )
    return mul_div(one_plus - two_sqrt, BPS_SCALE, one_plus)


def calculate_delta(
    lp_value: int,
    price_x: int,
    price_y: int,
    weight_x_bps: int,
    weight_y_bps: int,
    decimals_x: int,
    decimals_y: int,
) -> tuple[int, int]:
    """Token amounts (native decimals) held on each side of an LP position.

    ``lp_value`` is USD at 1e6; prices are USD at 1e8.
    """
    amounts: list[int] = []
    for price, weight, decimals in (
        (price_x, weight_x_bps, decimals_x),
        (price_y, weight_y_bps, decimals_y),
    ):
        if price <= 0:
            raise InvalidPriceError(f"Asset price must be positive (got {price})")
        asset_value = mul_div(lp_value, weight, BPS_SCALE)
        denominator = price * USD_SCALE
        if denominator == 0:
            raise DivisionByZeroError("Delta denominator is zero")
        amounts.append(asset_value * 10**decimals * PRICE_SCALE // denominator)
    return amounts[0], amounts[1]


def _check_scenarios(scenarios: Sequence[int], confidence_level: int) -> None:
    if confidence_level not in CONFIDENCE_LEVELS:
        raise InvalidParameterError(
            f"Confidence level must be one of {sorted(CONFIDENCE_LEVELS)}"
            f" (got {confidence_level})"
        )
    if not scenarios:
        raise InvalidParameterError("Scenario set is empty")


def calculate_var(
    position_value: int,
    time_horizon_hours: int,
    sorted_scenarios: Sequence[int],
    confidence_level: int,
) -> int:
    """Historical-scenario VaR in USD (1e6), scaled from a 24h baseline.

    ``sorted_scenarios`` are IL outcomes in bps, sorted ascending by the
    supplier. They are indexed, never re-sorted.
    """
    _check_scenarios(sorted_scenarios, confidence_level)
    if time_horizon_hours <= 0:
        raise InvalidParameterError(
            f"Time horizon must be positive (got {time_horizon_hours})"
        )

    var_il = sorted_scenarios[percentile_index(len(sorted_scenarios), confidence_level)]
    adjusted = mul_div(
        var_il, isqrt(time_horizon_hours * 100), isqrt(_BASELINE_HOURS_X100)
    )
    return mul_div(position_value, adjusted, BPS_SCALE)


def calculate_cvar(
    position_value: int,
    sorted_scenarios: Sequence[int],
    confidence_level: int,
) -> int:
    """Expected shortfall in USD (1e6): mean of the tail from the VaR index on."""
    _check_scenarios(sorted_scenarios, confidence_level)

    var_index = percentile_index(len(sorted_scenarios), confidence_level)
    tail = sorted_scenarios[var_index:]
    tail_mean = average(tail) if tail else sorted_scenarios[var_index]
    return mul_div(position_value, tail_mean, BPS_SCALE)


def health_factor_score(health_factor: int | None) -> int:
    if health_factor is None:
        return 0
    if health_factor >= 15 * HF_SCALE // 10:
        return 0
    if health_factor >= 13 * HF_SCALE // 10:
        return 30
    if health_factor >= 115 * HF_SCALE // 100:
        return 60
    return 100


def calculate_risk_score(
    il_now: int,
    il_threshold: int,
    var_95: int,
    cvar_95: int,
    position_value: int,
    volatility_bps: int,
    health_factor: int | None = None,
) -> int:
    """Composite risk score in ``[0, 100]``.

    Saturates at 100 once IL reaches the position's threshold.
    """
    il_score = normalized_score(il_now, il_threshold)
    if il_score >= 100:
        return 100
    if position_value <= 0:
        raise InvalidParameterError(
            f"Position value must be positive (got {position_value})"
        )

    weighted = (
        _WEIGHT_IL * il_score
        + _WEIGHT_VAR
        * normalized_score(var_95, mul_div(position_value, _VAR_BENCHMARK_BPS, BPS_SCALE))
        + _WEIGHT_CVAR
        * normalized_score(cvar_95, mul_div(position_value, _CVAR_BENCHMARK_BPS, BPS_SCALE))
        + _WEIGHT_VOLATILITY * normalized_score(volatility_bps, _VOLATILITY_BENCHMARK_BPS)
        + _WEIGHT_HEALTH * health_factor_score(health_factor)
    )
    return weighted // 100


def build_risk_report(
    position_value: int,
    il_now: int,
    il_threshold: int,
    sorted_scenarios: Sequence[int],
    volatility_bps: int,
    health_factor: int | None = None,
) -> RiskReport:
    """24h VaR95, CVaR95 and the composite score in one pass."""
    var_95 = calculate_var(position_value, 24, sorted_scenarios, 95)
    cvar_95 = calculate_cvar(position_value, sorted_scenarios, 95)
    score = calculate_risk_score(
        il_now,
        il_threshold,
        var_95,
        cvar_95,
        position_value,
        volatility_bps,
        health_factor,
    )
    return RiskReport(il_bps=il_now, var_95=var_95, cvar_95=cvar_95, risk_score=score)
