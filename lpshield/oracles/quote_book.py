"""Synchronous price oracle over quotes fetched ahead of an operation."""
from __future__ import annotations

from ..errors import InvalidPriceError
from ..models import OracleQuote


class QuoteBook:
    """Serve :class:`OracleQuote`s keyed by feed ID.

    Lets the synchronous core consume quotes an async adapter fetched
    beforehand; staleness is judged by the core against ``updated_at``.
    """

    def __init__(self, quotes: dict[str, OracleQuote] | None = None) -> None:
        self._quotes: dict[str, OracleQuote] = dict(quotes or {})

    def update(self, quotes: dict[str, OracleQuote]) -> None:
        self._quotes.update(quotes)

    def latest_price(self, feed_id: str) -> OracleQuote:
        quote = self._quotes.get(feed_id)
        if quote is None:
            raise InvalidPriceError(f"No quote for feed {feed_id}")
        return quote
