"""Error taxonomy — every core failure carries a stable reason code."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PriceSafetyReport


class LPShieldError(Exception):
    """Base class for all core failures.

    ``code`` is the distinguishable reason surfaced to callers. ``retryable``
    tells a keeper whether the same call may succeed later.
    """

    code = "LPSHIELD_ERROR"
    retryable = True


class InvalidPriceError(LPShieldError):
    code = "INVALID_PRICE"


class InvalidParameterError(LPShieldError):
    code = "INVALID_PARAMETER"


class DivisionByZeroError(LPShieldError):
    code = "DIVISION_BY_ZERO"


class ArithmeticOverflowError(LPShieldError):
    """Arithmetic invariant violated; indicates a logic fault."""

    code = "ARITHMETIC_OVERFLOW"
    retryable = False


class StalePriceError(LPShieldError):
    code = "STALE_PRICE"


class PriceManipulationDetected(LPShieldError):
    """Oracle/TWAP deviation reached the critical tier."""

    code = "PRICE_MANIPULATION_DETECTED"

    def __init__(self, message: str, report: PriceSafetyReport) -> None:
        super().__init__(message)
        self.report = report


class NotFoundError(LPShieldError):
    code = "NOT_FOUND"
    retryable = False


class AlreadyExistsError(LPShieldError):
    code = "ALREADY_EXISTS"


class AlreadySettledError(LPShieldError):
    code = "ALREADY_SETTLED"
    retryable = False


class SettlementNotDueError(LPShieldError):
    code = "SETTLEMENT_NOT_DUE"


class InsufficientFundsError(LPShieldError):
    code = "INSUFFICIENT_FUNDS"


class UnauthorizedError(LPShieldError):
    code = "UNAUTHORIZED"
    retryable = False


class InvalidTransitionError(LPShieldError):
    code = "INVALID_TRANSITION"
    retryable = False
