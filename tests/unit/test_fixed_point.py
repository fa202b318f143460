"""Unit tests for fixed-point helpers — pure functions, no I/O."""
from __future__ import annotations

import pytest

from lpshield.errors import (
    ArithmeticOverflowError,
    DivisionByZeroError,
    InvalidParameterError,
    InvalidPriceError,
)
from lpshield.fixed_point import (
    HF_SCALE,
    U64_MAX,
    average,
    mul_div,
    narrow,
    normalized_score,
    percentile_index,
    price_deviation_bps,
    to_scaled,
)


class TestPercentileIndex:
    def test_ten_at_95(self) -> None:
        assert percentile_index(10, 95) == 9

    def test_single_element(self) -> None:
        assert percentile_index(1, 99) == 0

    def test_floor(self) -> None:
        assert percentile_index(20, 90) == 18
        assert percentile_index(7, 50) == 3

    def test_clamped_to_last_index(self) -> None:
        assert percentile_index(5, 100) == 4

    @pytest.mark.parametrize("length", [1, 2, 3, 17, 100, 1001])
    @pytest.mark.parametrize("percentile", [90, 95, 99, 100])
    def test_never_out_of_range(self, length: int, percentile: int) -> None:
        assert 0 <= percentile_index(length, percentile) < length

    def test_empty_raises(self) -> None:
        with pytest.raises(InvalidParameterError):
            percentile_index(0, 95)


class TestPriceDeviationBps:
    def test_critical_example(self) -> None:
        assert price_deviation_bps(100, 94) == 638

    def test_safe_example(self) -> None:
        assert price_deviation_bps(100, 99) == 101

    def test_symmetric(self) -> None:
        assert price_deviation_bps(94, 100) == price_deviation_bps(100, 94)

    def test_equal_is_zero(self) -> None:
        assert price_deviation_bps(123_456, 123_456) == 0

    def test_zero_price_raises(self) -> None:
        with pytest.raises(InvalidPriceError):
            price_deviation_bps(0, 100)


class TestNormalizedScore:
    def test_proportional(self) -> None:
        assert normalized_score(25, 100) == 25

    def test_capped_at_100(self) -> None:
        assert normalized_score(500, 100) == 100

    def test_zero_benchmark_raises(self) -> None:
        with pytest.raises(InvalidParameterError):
            normalized_score(1, 0)


class TestArithmetic:
    def test_average_floors(self) -> None:
        assert average([1, 2]) == 1
        assert average([195, 200, 205]) == 200

    def test_average_empty_raises(self) -> None:
        with pytest.raises(InvalidParameterError):
            average([])

    def test_mul_div_keeps_wide_product(self) -> None:
        assert mul_div(U64_MAX, U64_MAX, U64_MAX) == U64_MAX

    def test_mul_div_zero_denominator(self) -> None:
        with pytest.raises(DivisionByZeroError):
            mul_div(1, 1, 0)

    def test_narrow(self) -> None:
        assert narrow(U64_MAX) == U64_MAX
        with pytest.raises(ArithmeticOverflowError):
            narrow(U64_MAX + 1)
        with pytest.raises(ArithmeticOverflowError):
            narrow(-1)

    def test_to_scaled_is_exact(self) -> None:
        assert to_scaled(1.15, HF_SCALE) == 1_150_000_000_000_000_000
        assert to_scaled("2000.5", 100_000_000) == 200_050_000_000
