"""Default event sink — writes domain events to the log."""
import logging

from .models import Event

logger = logging.getLogger(__name__)


class LoggingEventSink:
    """Emit events as structured log lines."""

    def emit(self, event: Event) -> None:
        details = " ".join(f"{k}={v}" for k, v in sorted(event.data.items()))
        logger.info(
            "%s position=%s t=%d %s",
            event.kind.value, event.position_id, event.timestamp, details,
        )
