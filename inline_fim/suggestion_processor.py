"""Turns raw streamed model output into a single insertable line.

Everything here is pure string handling so it can be exercised against
literal inputs.
"""

from __future__ import annotations

import logging
import unicodedata

logger = logging.getLogger(__name__)

SUGGESTION_BEGIN = "<<<SUGGESTION>>>"
SUGGESTION_END = "<<<END_SUGGESTION>>>"

MAX_SUGGESTION_CHARS = 100
MIN_SUGGESTION_CHARS = 2


def parse_suggestion(raw_text: str) -> str:
    """Return the text between the suggestion delimiters, or ``raw_text`` as-is."""
    raw = str(raw_text or "")
    start = raw.find(SUGGESTION_BEGIN)
    if start == -1:
        return raw
    body_start = start + len(SUGGESTION_BEGIN)
    end = raw.find(SUGGESTION_END, body_start)
    if end == -1:
        return raw
    return raw[body_start:end]


def clean_suggestion(candidate: str, user_text: str) -> str:
    cleaned = str(candidate or "").strip()

    # The candidate was trimmed, so an echo of user text ending in
    # whitespace only matches in its right-trimmed form.
    user_text = str(user_text or "")
    if user_text and cleaned.startswith(user_text):
        cleaned = cleaned[len(user_text):]
    elif user_text.rstrip() and cleaned.startswith(user_text.rstrip()):
        cleaned = cleaned[len(user_text.rstrip()):]

    newline = _first_line_break(cleaned)
    if newline != -1:
        cleaned = cleaned[:newline]

    cleaned = cleaned.lstrip()

    if is_unwanted_suggestion(cleaned):
        logger.debug("Filtered unwanted suggestion: %r", cleaned)
        return ""

    if len(cleaned) > MAX_SUGGESTION_CHARS:
        last_space = cleaned.rfind(" ", 0, MAX_SUGGESTION_CHARS + 1)
        if last_space > MAX_SUGGESTION_CHARS // 2:
            cleaned = cleaned[:last_space]
        else:
            cleaned = cleaned[:MAX_SUGGESTION_CHARS]
    return cleaned


def process_suggestion(raw_text: str, user_text: str) -> str:
    return clean_suggestion(parse_suggestion(raw_text), user_text)


def is_unwanted_suggestion(text: str) -> bool:
    if text.startswith(("//", "/*", "*")):
        return True
    # "# " is allowed through for Markdown headers; "#include" and friends are not.
    if text.startswith("#") and not text.startswith("# "):
        return True
    if len(text) < MIN_SUGGESTION_CHARS:
        return True
    return _is_punctuation_or_space(text)


def _is_punctuation_or_space(text: str) -> bool:
    return all(ch.isspace() or unicodedata.category(ch).startswith("P") for ch in text)


def _first_line_break(text: str) -> int:
    positions = [pos for pos in (text.find("\n"), text.find("\r")) if pos != -1]
    return min(positions) if positions else -1
