"""Pyth Hermes adapter producing 1e8-scaled :class:`OracleQuote`s."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Iterable

import aiohttp
import certifi

from ..config import PythConfig
from ..fixed_point import PRICE_SCALE
from ..models import OracleQuote

logger = logging.getLogger(__name__)

_PRICE_DECIMALS = 8


def to_price_scale(price_raw: int, expo: int) -> int:
    """Rescale a Pyth ``price * 10^expo`` to the 1e8 price scale (floored)."""
    shift = _PRICE_DECIMALS + expo
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


def _parse_quotes(
    parsed: Iterable[dict[str, Any]], feeds: dict[str, str]
) -> dict[str, OracleQuote]:
    """Map Hermes ``parsed`` entries back to every symbol sharing the feed."""
    symbols_by_feed: dict[str, list[str]] = {}
    for symbol, feed_id in feeds.items():
        symbols_by_feed.setdefault(feed_id, []).append(symbol)

    quotes: dict[str, OracleQuote] = {}
    for entry in parsed:
        body = entry.get("price", {})
        quote = OracleQuote(
            price=to_price_scale(int(body.get("price", 0)), int(body.get("expo", 0))),
            updated_at=int(body.get("publish_time", 0)),
        )
        for symbol in symbols_by_feed.get(entry.get("id"), []):
            quotes[symbol] = quote
    return quotes


class PythOracle:
    """Async client for the Hermes ``latest`` price endpoint.

    Failures are logged and yield an empty result; callers treat a missing
    quote as unavailable rather than retrying here.
    """

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.feeds = dict(config.feeds)

    def _url(self, feed_ids: list[str]) -> str:
        return self.hermes_url + "?" + "&".join(f"ids[]={fid}" for fid in feed_ids)

    async def fetch_quotes(
        self, symbols: list[str] | None = None
    ) -> dict[str, OracleQuote]:
        """Latest quotes keyed by symbol, for *symbols* or every configured feed."""
        feeds = (
            self.feeds
            if symbols is None
            else {s: fid for s, fid in self.feeds.items() if s in symbols}
        )
        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return {}

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(self._url(feed_ids)) as response:
                    if response.status != 200:
                        logger.error("Pyth Hermes returned HTTP %s", response.status)
                        return {}
                    data = await response.json()
        except Exception as e:
            logger.error("Pyth Hermes request failed: %s", e)
            return {}

        quotes = _parse_quotes(data.get("parsed", []), feeds)
        for symbol, quote in sorted(quotes.items()):
            logger.debug(
                "Pyth %s: $%.4f published %d",
                symbol, quote.price / PRICE_SCALE, quote.updated_at,
            )
        return quotes
