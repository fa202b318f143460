"""Price oracle adapters."""
from .pyth import PythOracle
from .quote_book import QuoteBook

__all__ = ["PythOracle", "QuoteBook"]
