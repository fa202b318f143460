"""Protection executor protocol — AMM exits and lending-backed hedges."""
from typing import Protocol

from ..models import Position


class ProtectionExecutor(Protocol):
    """Carries out the protective action chosen by the trigger service."""

    def execute_stop_loss(self, position: Position, price: int) -> None: ...

    def open_hedge(self, position: Position, borrow_amount: int) -> int:
        """Borrow ``borrow_amount`` of asset X and sell it; return stable received."""
        ...

    def reduce_hedge(self, position: Position, fraction_bps: int) -> int:
        """Repay ``fraction_bps`` of the outstanding borrow; return amount repaid."""
        ...

    def close_hedge(self, position: Position) -> None: ...
