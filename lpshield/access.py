"""Static keeper/governor authorization built from configuration."""
from __future__ import annotations

from .config import AccessConfig


class StaticAuthorizer:
    """Authorize callers against fixed keeper and governor address sets.

    Addresses are compared case-insensitively. Keepers are registered for
    every position family.
    """

    def __init__(self, config: AccessConfig) -> None:
        self._keepers = {k.lower() for k in config.keepers}
        self._governors = {g.lower() for g in config.governors}

    def is_keeper(self, caller: str, position_id: str) -> bool:
        return caller.lower() in self._keepers

    def is_governor(self, caller: str) -> bool:
        return caller.lower() in self._governors
