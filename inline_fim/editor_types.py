"""Value types shared with the editor collaborator."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Position:
    line: int
    character: int


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position


@dataclass(frozen=True)
class RecentlyEditedRange:
    file_path: str
    range: Range
    edited_lines: tuple[str, ...] = ()
    symbols: frozenset[str] = frozenset()
    timestamp: float = 0.0


@dataclass(frozen=True)
class VisitedSnippet:
    file_path: str
    content: str


@dataclass(frozen=True)
class VisibleRange:
    start_line: int
    end_line: int
    content: str


@dataclass(frozen=True)
class VisibleEditorInfo:
    file_path: str
    language_id: str = ""
    visible_ranges: tuple[VisibleRange, ...] = ()
    is_active: bool = False


@dataclass(frozen=True)
class FimDocument:
    text: str
    file_path: str = ""
    language_id: str = ""


class TriggerKind(str, enum.Enum):
    KEYSTROKE = "keystroke"
    CURSOR_MOVE = "cursor_move"
    INVOKE = "invoke"


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CompletionRequest:
    """One trigger's worth of prompt context.

    Never mutated; a newer trigger replaces the whole request.
    """

    request_id: str
    file_path: str
    cursor: Position
    prefix: str
    suffix: str
    context_blob: str
    user_text: str
    trigger: TriggerKind = TriggerKind.KEYSTROKE
    recently_edited: tuple[RecentlyEditedRange, ...] = ()
    recently_visited: tuple[VisitedSnippet, ...] = ()
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Suggestion:
    request_id: str
    raw_text: str
    cleaned_text: str
    shown: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.cleaned_text
