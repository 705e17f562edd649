from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from PySide6.QtCore import QCoreApplication
from PySide6.QtGui import QGuiApplication

from inline_fim.editor_types import (
    FimDocument,
    Position,
    RecentlyEditedRange,
    VisibleEditorInfo,
    VisitedSnippet,
)

logger = logging.getLogger(__name__)

CLIPBOARD_MIN_CHARS = 6
CLIPBOARD_MAX_CHARS = 499

VISIBLE_CODE_HEADER = "// Code visible in editor:"
CLIPBOARD_HEADER = "\n// Clipboard content:"
USER_TEXT_HEADER = "\n// User's message:"


@dataclass(slots=True)
class AssembledFimContext:
    prefix: str
    suffix: str
    context_blob: str
    user_text: str
    cursor: Position
    token_estimate: int
    metadata: dict[str, Any] = field(default_factory=dict)


def qt_clipboard_text() -> str:
    app = QCoreApplication.instance()
    if not isinstance(app, QGuiApplication):
        return ""
    return str(QGuiApplication.clipboard().text() or "")


class ContextAssembler:
    def __init__(self, clipboard_reader: Callable[[], str] | None = None) -> None:
        self._read_clipboard = clipboard_reader or qt_clipboard_text

    def assemble_fim(
        self,
        *,
        document: FimDocument,
        cursor: Position,
        prefix_override: str | None = None,
        suffix_override: str | None = None,
        visible_editors: Sequence[VisibleEditorInfo] = (),
        recently_edited: Sequence[RecentlyEditedRange] = (),
        recently_visited: Sequence[VisitedSnippet] = (),
        max_context_tokens: int = 8000,
    ) -> AssembledFimContext:
        text = str(document.text or "")
        # Only "\n" ends a line; "\r\n" keeps its "\r" on the line it ends.
        pieces = text.split("\n")
        lines = [piece + "\n" for piece in pieces[:-1]] + pieces[-1:]
        cline, ccol, offset = self._clamp_cursor(lines, cursor)

        doc_prefix = text[:offset]
        doc_suffix = text[offset:]
        if prefix_override is not None:
            prefix = str(prefix_override)
            suffix = str(suffix_override or "")
            user_text = prefix
        else:
            prefix = doc_prefix
            suffix = doc_suffix if suffix_override is None else str(suffix_override)
            user_text = lines[cline][:ccol]

        parts: list[str] = []
        visible_count = self._append_visible_code(parts, visible_editors)
        clipboard = self._clipboard_context()
        if clipboard:
            parts.append(CLIPBOARD_HEADER)
            parts.append(clipboard)
        parts.append(USER_TEXT_HEADER)
        parts.append(prefix)
        context_blob = "\n".join(parts)

        budget = max(256, int(max_context_tokens))
        token_estimate = self._estimate_tokens(context_blob)
        if token_estimate > budget:
            context_blob = self._trim_prompt(context_blob, max_tokens=budget)
            token_estimate = self._estimate_tokens(context_blob)

        language = document.language_id or infer_language_for_path(document.file_path)
        metadata: dict[str, Any] = {
            "language": language,
            "line": cline,
            "column": ccol,
            "token_estimate": token_estimate,
            "visible_regions": visible_count,
            "clipboard_chars": len(clipboard),
            "recently_edited": len(recently_edited),
            "recently_visited": len(recently_visited),
            "override": prefix_override is not None,
        }
        return AssembledFimContext(
            prefix=prefix,
            suffix=suffix,
            context_blob=context_blob,
            user_text=user_text,
            cursor=Position(cline, ccol),
            token_estimate=token_estimate,
            metadata=metadata,
        )

    def _append_visible_code(self, parts: list[str], editors: Sequence[VisibleEditorInfo]) -> int:
        if not editors:
            return 0
        parts.append(VISIBLE_CODE_HEADER)
        count = 0
        for editor in editors:
            file_name = os.path.basename(str(editor.file_path or "").replace("\\", "/")) or str(editor.file_path or "")
            language = editor.language_id or infer_language_for_path(editor.file_path)
            parts.append(f"\n// File: {file_name} ({language})")
            for visible in editor.visible_ranges:
                parts.append(visible.content)
                count += 1
        return count

    def _clipboard_context(self) -> str:
        try:
            text = str(self._read_clipboard() or "")
        except Exception:
            logger.debug("Clipboard read failed", exc_info=True)
            return ""
        if CLIPBOARD_MIN_CHARS <= len(text) <= CLIPBOARD_MAX_CHARS:
            return text
        return ""

    def _clamp_cursor(self, lines: list[str], cursor: Position) -> tuple[int, int, int]:
        line = max(0, min(int(cursor.line or 0), len(lines) - 1))
        content = lines[line].rstrip("\r\n")
        column = max(0, min(int(cursor.character or 0), len(content)))
        offset = sum(len(item) for item in lines[:line]) + column
        return line, column, offset

    def _estimate_tokens(self, text: str) -> int:
        return max(1, int((len(text) + 3) // 4))

    def _trim_prompt(self, text: str, max_tokens: int) -> str:
        if self._estimate_tokens(text) <= max_tokens:
            return text
        max_chars = max(256, int(max_tokens) * 4)
        return text[-max_chars:]


def infer_language_for_path(file_path: str) -> str:
    suffix = Path(str(file_path or "")).suffix.lower()
    mapping = {
        ".py": "python",
        ".pyw": "python",
        ".pyi": "python",
        ".js": "javascript",
        ".mjs": "javascript",
        ".cjs": "javascript",
        ".jsx": "javascript",
        ".ts": "typescript",
        ".tsx": "typescript",
        ".json": "json",
        ".html": "html",
        ".htm": "html",
        ".css": "css",
        ".scss": "scss",
        ".less": "less",
        ".sh": "bash",
        ".zsh": "bash",
        ".bash": "bash",
        ".php": "php",
        ".c": "c",
        ".h": "c",
        ".cpp": "cpp",
        ".hpp": "cpp",
        ".cc": "cpp",
        ".rs": "rust",
        ".go": "go",
        ".java": "java",
        ".md": "markdown",
        ".yaml": "yaml",
        ".yml": "yaml",
        ".toml": "toml",
    }
    return mapping.get(suffix, "text")
