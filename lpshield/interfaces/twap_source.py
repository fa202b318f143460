"""TWAP source protocol — manipulation-resistant pool price."""
from typing import Protocol


class TwapSource(Protocol):
    """Time-weighted average price (1e8) of a pool over a trailing window."""

    def twap_price(self, pool_id: str, window_seconds: int) -> int: ...
