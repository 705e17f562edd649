from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator, Union


class FimError(Exception):
    """Base class for FIM engine errors."""


class FimTransportError(FimError):
    """Non-2xx response or network failure from the FIM endpoint."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class FimCapabilityError(FimError):
    """The active model is not loaded or cannot do fill-in-the-middle."""


class CancelToken:
    """Cooperative cancellation flag shared between the UI thread and a worker.

    The worker polls ``is_cancelled`` between stream reads; the UI thread calls
    ``cancel()``. Cancelling twice is harmless.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:
                pass

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()


@dataclass(frozen=True, slots=True)
class TextChunk:
    text: str


@dataclass(frozen=True, slots=True)
class ReasoningChunk:
    text: str


StreamChunk = Union[TextChunk, ReasoningChunk]


@dataclass(slots=True)
class FimStreamRequest:
    base_url: str
    api_key: str
    model: str
    prefix: str
    suffix: str
    max_tokens: int
    temperature: float
    timeout_s: float


class FimProviderClient(ABC):
    @abstractmethod
    def stream_fim_chunks(
        self,
        request: FimStreamRequest,
        *,
        cancel_token: CancelToken | None = None,
    ) -> Iterator[StreamChunk]:
        raise NotImplementedError
