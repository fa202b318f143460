"""Position registry protocol — single source of truth for positions."""
from typing import Protocol

from ..models import Position, PositionStatus


class PositionRegistry(Protocol):
    """Supplies position metadata and accepts status transitions."""

    def get_position(self, position_id: str) -> Position | None: ...

    def set_status(
        self, position_id: str, status: PositionStatus, now: int
    ) -> None: ...

    def record_operation(self, position_id: str, now: int) -> None: ...
