"""Event sink protocol — domain event emission."""
from typing import Protocol

from ..models import Event


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...
