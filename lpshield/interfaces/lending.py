"""Lending protocol — health factor of the account backing a hedge."""
from typing import Protocol


class LendingProtocol(Protocol):
    """Solvency ratio of a borrowing account, scaled 1e18."""

    def health_factor(self, account: str) -> int: ...
