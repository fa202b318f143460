"""Service modules"""
from .settlement import InMemoryVirtualPositionStore, SettlementLedger
from .trigger import TriggerService

__all__ = ["InMemoryVirtualPositionStore", "SettlementLedger", "TriggerService"]
