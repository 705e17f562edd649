from __future__ import annotations

import enum
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class TelemetryEventName(str, enum.Enum):
    ACCEPT_SUGGESTION = "ACCEPT_SUGGESTION"
    REJECT_SUGGESTION = "REJECT_SUGGESTION"


class TelemetrySink(Protocol):
    def capture_event(self, name: TelemetryEventName) -> None: ...


class LoggingTelemetrySink:
    """Default sink for hosts that have no telemetry service wired up."""

    def capture_event(self, name: TelemetryEventName) -> None:
        logger.info("telemetry event %s", TelemetryEventName(name).value)
