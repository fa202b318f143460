"""Authorizer protocol — caller identity checks for mutating operations."""
from typing import Protocol


class Authorizer(Protocol):
    def is_keeper(self, caller: str, position_id: str) -> bool: ...

    def is_governor(self, caller: str) -> bool: ...
