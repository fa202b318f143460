"""Payment ledger protocol — the position's fee balance ("gas tank")."""
from typing import Protocol

from ..models import DeductionResult


class PaymentLedger(Protocol):
    """Deducts fees from a position's balance.

    Raises :class:`~lpshield.errors.InsufficientFundsError` when the balance
    cannot cover ``amount_usd``.
    """

    def deduct_fee(
        self, position_id: str, amount_usd: int, payer: str
    ) -> DeductionResult: ...
