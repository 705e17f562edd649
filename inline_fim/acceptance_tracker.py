from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from PySide6.QtCore import QObject, QTimer, Signal

from inline_fim.telemetry import LoggingTelemetrySink, TelemetryEventName, TelemetrySink

logger = logging.getLogger(__name__)

DEFAULT_REJECT_TIMEOUT_MS = 10000


class AcceptanceOutcome(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(slots=True)
class AcceptanceRecord:
    request_id: str
    outcome: AcceptanceOutcome = AcceptanceOutcome.PENDING
    resolved_at: float | None = None


class AcceptanceTracker(QObject):
    """Reports exactly one accept or reject event per shown suggestion.

    A record is created by ``arm()`` and lives until the first of: an
    ``accept()`` for its request id, its rejection timeout, or an explicit
    ``reject()`` (the user moved on). Later resolutions for the same id are
    ignored. ``reject_unshown()`` reports a rejection for a request that never
    produced anything to show, without creating a record.
    """

    resolved = Signal(object)  # AcceptanceRecord

    def __init__(
        self,
        *,
        telemetry: TelemetrySink | None = None,
        timeout_ms: int = DEFAULT_REJECT_TIMEOUT_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._telemetry = telemetry or LoggingTelemetrySink()
        self._timeout_ms = max(1, int(timeout_ms))
        self._records: dict[str, AcceptanceRecord] = {}
        self._timers: dict[str, QTimer] = {}

    def set_timeout_ms(self, timeout_ms: int) -> None:
        self._timeout_ms = max(1, int(timeout_ms))

    def pending_ids(self) -> list[str]:
        return [key for key, record in self._records.items() if record.outcome is AcceptanceOutcome.PENDING]

    def is_pending(self, request_id: str) -> bool:
        record = self._records.get(request_id)
        return record is not None and record.outcome is AcceptanceOutcome.PENDING

    def arm(self, request_id: str) -> AcceptanceRecord:
        key = str(request_id or "")
        existing = self._records.get(key)
        if existing is not None:
            return existing
        record = AcceptanceRecord(request_id=key)
        self._records[key] = record

        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda request_key=key: self._on_timeout(request_key))
        self._timers[key] = timer
        timer.start(self._timeout_ms)
        return record

    def accept(self, request_id: str) -> bool:
        return self._resolve(request_id, AcceptanceOutcome.ACCEPTED)

    def reject(self, request_id: str) -> bool:
        return self._resolve(request_id, AcceptanceOutcome.REJECTED)

    def reject_unshown(self, request_id: str) -> None:
        record = AcceptanceRecord(
            request_id=str(request_id or ""),
            outcome=AcceptanceOutcome.REJECTED,
            resolved_at=time.time(),
        )
        self._report(record)

    def clear(self) -> None:
        """Reject every pending record, then drop the timers."""
        for request_id in self.pending_ids():
            self.reject(request_id)
        for timer in list(self._timers.values()):
            timer.stop()
            timer.deleteLater()
        self._timers.clear()
        self._records.clear()

    def _on_timeout(self, request_id: str) -> None:
        if self._resolve(request_id, AcceptanceOutcome.REJECTED):
            logger.debug("Suggestion %s timed out without acceptance", request_id)

    def _resolve(self, request_id: str, outcome: AcceptanceOutcome) -> bool:
        key = str(request_id or "")
        record = self._records.get(key)
        if record is None or record.outcome is not AcceptanceOutcome.PENDING:
            return False
        record.outcome = outcome
        record.resolved_at = time.time()

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()
        self._records.pop(key, None)
        self._report(record)
        return True

    def _report(self, record: AcceptanceRecord) -> None:
        if record.outcome is AcceptanceOutcome.ACCEPTED:
            self._telemetry.capture_event(TelemetryEventName.ACCEPT_SUGGESTION)
        else:
            self._telemetry.capture_event(TelemetryEventName.REJECT_SUGGESTION)
        self.resolved.emit(record)
