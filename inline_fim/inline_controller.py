from __future__ import annotations

import concurrent.futures
import enum
import logging
import queue
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from PySide6.QtCore import QObject, QTimer, Signal

from inline_fim.acceptance_tracker import AcceptanceTracker
from inline_fim.context_assembler import ContextAssembler
from inline_fim.editor_types import (
    CompletionRequest,
    FimDocument,
    Position,
    RecentlyEditedRange,
    Suggestion,
    TriggerKind,
    VisibleEditorInfo,
    VisitedSnippet,
    new_request_id,
)
from inline_fim.fim_model import FimModel
from inline_fim.provider_base import CancelToken, FimTransportError
from inline_fim.settings_schema import NormalizedFimAssistConfig, default_fim_settings
from inline_fim.suggestion_processor import process_suggestion
from inline_fim.telemetry import TelemetrySink

logger = logging.getLogger(__name__)


class CompletionState(str, enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REQUESTING = "requesting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SUPPRESSED = "suppressed"


@dataclass(slots=True)
class _PendingTrigger:
    token: int
    document: FimDocument
    cursor: Position
    trigger: TriggerKind
    prefix_override: str | None
    suffix_override: str | None
    visible_editors: tuple[VisibleEditorInfo, ...]
    recently_edited: tuple[RecentlyEditedRange, ...]
    recently_visited: tuple[VisitedSnippet, ...]


@dataclass(slots=True)
class _ActiveRequest:
    token: int
    request: CompletionRequest
    cancel_token: CancelToken
    future: concurrent.futures.Future | None = None


class InlineSuggestionController(QObject):
    """Debounced, single-flight FIM suggestions for one editing surface.

    Every call to ``request_completion`` supersedes whatever came before it: a
    pending debounce is dropped, an in-flight stream is cancelled and a shown
    but unaccepted suggestion is rejected. The slot holding the active request
    is only touched from the thread that owns this object; workers receive an
    immutable request and a cancel token and report back through a queue.
    """

    suggestionReady = Signal(object)  # Suggestion
    stateChanged = Signal(str)

    def __init__(
        self,
        *,
        model: FimModel,
        context_assembler: ContextAssembler,
        settings_provider: Callable[[], Any] | None = None,
        telemetry: TelemetrySink | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._model = model
        self._assembler = context_assembler
        self._settings_provider = settings_provider or default_fim_settings
        self._tracker = AcceptanceTracker(telemetry=telemetry, parent=self)

        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="inline-fim")
        self._result_queue: queue.Queue[dict[str, Any]] = queue.Queue()

        self._result_pump = QTimer(self)
        self._result_pump.setInterval(16)
        self._result_pump.timeout.connect(self._drain_results)
        self._result_pump.start()

        self._debounce_timer = QTimer(self)
        self._debounce_timer.setSingleShot(True)
        self._debounce_timer.timeout.connect(self._flush_debounced)

        self._pending: _PendingTrigger | None = None
        self._active: _ActiveRequest | None = None
        self._shown_request_id = ""
        self._token_counter = 0
        self._state = CompletionState.IDLE

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def acceptance_tracker(self) -> AcceptanceTracker:
        return self._tracker

    @property
    def shown_request_id(self) -> str:
        return self._shown_request_id

    def is_fim_available(self) -> bool:
        return self._model.loaded and self._model.supports_fim()

    def reload_model(self) -> bool:
        return self._model.reload(self._load_settings())

    def request_completion(
        self,
        *,
        document: FimDocument,
        cursor: Position,
        trigger: TriggerKind = TriggerKind.KEYSTROKE,
        prefix_override: str | None = None,
        suffix_override: str | None = None,
        visible_editors: Sequence[VisibleEditorInfo] = (),
        recently_edited: Sequence[RecentlyEditedRange] = (),
        recently_visited: Sequence[VisitedSnippet] = (),
    ) -> None:
        self._supersede()

        self._pending = _PendingTrigger(
            token=self._next_token(),
            document=document,
            cursor=cursor,
            trigger=TriggerKind(trigger),
            prefix_override=prefix_override,
            suffix_override=suffix_override,
            visible_editors=tuple(visible_editors or ()),
            recently_edited=tuple(recently_edited or ()),
            recently_visited=tuple(recently_visited or ()),
        )
        cfg = self._load_settings()
        self._set_state(CompletionState.DEBOUNCING)
        self._debounce_timer.start(int(cfg.debounce_ms))

    def cancel(self) -> None:
        """Editor-side cancellation; a shown suggestion stays pending."""
        had_work = self._pending is not None or self._active is not None
        self._pending = None
        self._debounce_timer.stop()
        self._cancel_active()
        if had_work:
            self._set_state(CompletionState.CANCELLED)

    def accept_suggestion(self, request_id: str) -> bool:
        if request_id == self._shown_request_id:
            self._shown_request_id = ""
        return self._tracker.accept(request_id)

    def on_accept_action(self, *_args: Any) -> bool:
        """Slot for the host's accept command; accepts whatever is currently shown."""
        request_id = self._shown_request_id
        if not request_id:
            return False
        return self.accept_suggestion(request_id)

    def shutdown(self) -> None:
        """Cancel in-flight work, reject anything still shown and join the workers.

        Workers observe the cancel token between reads, so the join only waits
        for the read that is currently in progress to return.
        """
        self._pending = None
        self._debounce_timer.stop()
        self._cancel_active()
        self._tracker.clear()
        self._shown_request_id = ""
        self._result_pump.stop()
        self._executor.shutdown(wait=True, cancel_futures=True)

    def _supersede(self) -> None:
        self._pending = None
        self._debounce_timer.stop()
        if self._cancel_active():
            self._set_state(CompletionState.CANCELLED)
        if self._shown_request_id:
            request_id = self._shown_request_id
            self._shown_request_id = ""
            self._tracker.reject(request_id)

    def _cancel_active(self) -> bool:
        active = self._active
        self._active = None
        if active is None:
            return False
        active.cancel_token.cancel()
        if active.future is not None:
            try:
                active.future.cancel()
            except Exception:
                pass
        logger.debug("Cancelled in-flight FIM request %s", active.request.request_id)
        return True

    def _flush_debounced(self) -> None:
        item = self._pending
        self._pending = None
        if item is None or item.token != self._token_counter:
            return

        cfg = self._load_settings()
        self._tracker.set_timeout_ms(cfg.reject_timeout_ms)
        request_id = new_request_id()

        if not cfg.enabled or (not cfg.auto_trigger and item.trigger is not TriggerKind.INVOKE):
            self._finish_suppressed(request_id, report=False)
            return
        if not self._model.loaded and not self._model.reload(cfg):
            self._finish_suppressed(request_id, report=True)
            return
        if not self._model.supports_fim():
            logger.debug("FIM not supported by model %r", self._model.model_id)
            self._finish_suppressed(request_id, report=True)
            return

        assembled = self._assembler.assemble_fim(
            document=item.document,
            cursor=item.cursor,
            prefix_override=item.prefix_override,
            suffix_override=item.suffix_override,
            visible_editors=item.visible_editors,
            recently_edited=item.recently_edited,
            recently_visited=item.recently_visited,
            max_context_tokens=cfg.max_context_tokens,
        )
        request = CompletionRequest(
            request_id=request_id,
            file_path=str(item.document.file_path or ""),
            cursor=assembled.cursor,
            prefix=assembled.prefix,
            suffix=assembled.suffix,
            context_blob=assembled.context_blob,
            user_text=assembled.user_text,
            trigger=item.trigger,
            recently_edited=item.recently_edited,
            recently_visited=item.recently_visited,
        )
        self._start_worker(item.token, request)

    def _start_worker(self, token: int, request: CompletionRequest) -> None:
        active = _ActiveRequest(token=token, request=request, cancel_token=CancelToken())
        self._active = active
        self._set_state(CompletionState.REQUESTING)
        try:
            fut = self._executor.submit(self._run_worker, token, request, active.cancel_token)
        except Exception:
            logger.exception("Could not schedule FIM request")
            self._active = None
            self._finish_empty(request.request_id, raw_text="")
            return
        active.future = fut
        fut.add_done_callback(lambda future: self._queue_result(token, future))

    def _run_worker(self, token: int, request: CompletionRequest, cancel_token: CancelToken) -> dict[str, Any]:
        cancelled = {"token": token, "request_id": request.request_id, "cancelled": True}
        parts: list[str] = []
        try:
            for fragment in self._model.stream_fim(request.context_blob, request.suffix, cancel_token=cancel_token):
                if cancel_token.is_cancelled:
                    return cancelled
                parts.append(fragment)
        except FimTransportError as exc:
            if cancel_token.is_cancelled:
                return cancelled
            logger.warning("FIM request %s failed: %s", request.request_id, exc)
            return {
                "token": token,
                "request_id": request.request_id,
                "ok": False,
                "raw_text": "",
                "text": "",
                "status_text": str(exc),
            }
        if cancel_token.is_cancelled:
            return cancelled

        raw = "".join(parts)
        text = process_suggestion(raw, request.user_text)
        logger.debug("FIM raw=%r cleaned=%r", raw, text)
        return {
            "token": token,
            "request_id": request.request_id,
            "ok": True,
            "raw_text": raw,
            "text": text,
            "status_text": "",
        }

    def _queue_result(self, token: int, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        try:
            payload = future.result()
        except Exception:
            logger.exception("FIM worker crashed")
            payload = {
                "token": token,
                "ok": False,
                "raw_text": "",
                "text": "",
                "status_text": "FIM request failed.",
            }
        self._result_queue.put(payload)

    def _drain_results(self) -> None:
        while True:
            try:
                payload = self._result_queue.get_nowait()
            except queue.Empty:
                return
            if not isinstance(payload, dict):
                continue
            self._handle_worker_result(payload)

    def _handle_worker_result(self, payload: dict[str, Any]) -> None:
        active = self._active
        token = int(payload.get("token") or 0)
        if active is None or token != active.token:
            return
        self._active = None
        request_id = active.request.request_id

        if payload.get("cancelled"):
            self._set_state(CompletionState.CANCELLED)
            return

        text = str(payload.get("text") or "")
        raw_text = str(payload.get("raw_text") or "")
        if not payload.get("ok", False) or not text:
            self._finish_empty(request_id, raw_text=raw_text)
            return

        self._tracker.arm(request_id)
        self._shown_request_id = request_id
        self._set_state(CompletionState.COMPLETED)
        self.suggestionReady.emit(Suggestion(request_id=request_id, raw_text=raw_text, cleaned_text=text, shown=True))

    def _finish_empty(self, request_id: str, *, raw_text: str) -> None:
        self._tracker.reject_unshown(request_id)
        self._set_state(CompletionState.COMPLETED)
        self.suggestionReady.emit(Suggestion(request_id=request_id, raw_text=raw_text, cleaned_text="", shown=False))

    def _finish_suppressed(self, request_id: str, *, report: bool) -> None:
        if report:
            self._tracker.reject_unshown(request_id)
        self._set_state(CompletionState.SUPPRESSED)
        self.suggestionReady.emit(Suggestion(request_id=request_id, raw_text="", cleaned_text="", shown=False))

    def _load_settings(self) -> NormalizedFimAssistConfig:
        return NormalizedFimAssistConfig.from_mapping(self._settings_provider())

    def _set_state(self, state: CompletionState) -> None:
        self._state = state
        self.stateChanged.emit(state.value)

    def _next_token(self) -> int:
        self._token_counter += 1
        return self._token_counter
