"""Price oracle protocol — latest quote for a feed, read synchronously."""
from typing import Protocol

from ..models import OracleQuote


class PriceOracle(Protocol):
    """Latest price (1e8) for a feed together with its publish time."""

    def latest_price(self, feed_id: str) -> OracleQuote: ...
