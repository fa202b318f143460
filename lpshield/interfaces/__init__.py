"""Collaborator protocols consumed by the LP Shield core."""
from .authorizer import Authorizer
from .events import EventSink
from .executor import ProtectionExecutor
from .lending import LendingProtocol
from .payments import PaymentLedger
from .price_oracle import PriceOracle
from .registry import PositionRegistry
from .twap_source import TwapSource

__all__ = [
    "Authorizer",
    "EventSink",
    "LendingProtocol",
    "PaymentLedger",
    "PositionRegistry",
    "PriceOracle",
    "ProtectionExecutor",
    "TwapSource",
]
