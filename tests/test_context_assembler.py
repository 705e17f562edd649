"""Tests for FIM prompt context assembly."""

import pytest

from inline_fim.context_assembler import ContextAssembler, infer_language_for_path, qt_clipboard_text
from inline_fim.editor_types import (
    FimDocument,
    Position,
    Range,
    RecentlyEditedRange,
    VisibleEditorInfo,
    VisibleRange,
    VisitedSnippet,
)


def _assembler(clipboard=""):
    return ContextAssembler(clipboard_reader=lambda: clipboard)


class TestPrefixSuffix:
    """Splitting the document at the cursor."""

    def test_splits_at_cursor_offset(self):
        doc = FimDocument(text="def f():\n    return 1\n", file_path="/p/mod.py")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(1, 4))
        assert ctx.prefix == "def f():\n    "
        assert ctx.suffix == "return 1\n"
        assert ctx.user_text == "    "

    def test_cursor_is_clamped_to_document(self):
        doc = FimDocument(text="abc\nde\n")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(10, 99))
        assert ctx.prefix == "abc\nde\n"
        assert ctx.suffix == ""
        assert ctx.cursor == Position(2, 0)

    def test_column_clamped_to_line_length(self):
        doc = FimDocument(text="ab\ncdef")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(0, 50))
        assert ctx.prefix == "ab"
        assert ctx.suffix == "\ncdef"

    def test_crlf_lines(self):
        doc = FimDocument(text="one\r\ntwo")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(1, 1))
        assert ctx.prefix == "one\r\nt"
        assert ctx.suffix == "wo"

    @pytest.mark.parametrize("separator", ["\f", "\v", "\x1c", "\u2028", "\x85"])
    def test_only_newline_ends_a_line(self, separator):
        """Form feeds and Unicode separators stay inside their line."""
        doc = FimDocument(text=f"a{separator}b\ncd")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(1, 1))
        assert ctx.prefix == f"a{separator}b\nc"
        assert ctx.suffix == "d"
        assert ctx.user_text == "c"
        assert ctx.cursor == Position(1, 1)

    def test_column_counts_separator_characters(self):
        doc = FimDocument(text="x\fy = ")
        ctx = _assembler().assemble_fim(document=doc, cursor=Position(0, 6))
        assert ctx.prefix == "x\fy = "
        assert ctx.user_text == "x\fy = "

    def test_empty_document(self):
        ctx = _assembler().assemble_fim(document=FimDocument(text=""), cursor=Position(0, 0))
        assert ctx.prefix == ""
        assert ctx.suffix == ""

    def test_override_takes_precedence(self):
        doc = FimDocument(text="ignored document text")
        ctx = _assembler().assemble_fim(
            document=doc,
            cursor=Position(0, 7),
            prefix_override="Please refactor",
            suffix_override="",
        )
        assert ctx.prefix == "Please refactor"
        assert ctx.suffix == ""
        assert ctx.user_text == "Please refactor"
        assert ctx.metadata["override"] is True


class TestContextBlob:
    """Blob ordering and clipboard gating."""

    def test_fixed_section_order(self):
        editors = [
            VisibleEditorInfo(
                file_path="/a/b/main.py",
                language_id="python",
                visible_ranges=(VisibleRange(0, 1, "x = 1"),),
            )
        ]
        ctx = _assembler(clipboard="print(x)").assemble_fim(
            document=FimDocument(text=""),
            cursor=Position(0, 0),
            prefix_override="hello there",
            visible_editors=editors,
        )
        assert ctx.context_blob == (
            "// Code visible in editor:\n"
            "\n// File: main.py (python)\n"
            "x = 1\n"
            "\n// Clipboard content:\n"
            "print(x)\n"
            "\n// User's message:\n"
            "hello there"
        )

    def test_language_inferred_when_missing(self):
        editors = [VisibleEditorInfo(file_path="src/app.ts", visible_ranges=(VisibleRange(3, 4, "let a"),))]
        ctx = _assembler().assemble_fim(
            document=FimDocument(text="q"),
            cursor=Position(0, 1),
            visible_editors=editors,
        )
        assert "// File: app.ts (typescript)" in ctx.context_blob
        assert ctx.metadata["visible_regions"] == 1

    def test_user_text_is_always_last(self):
        ctx = _assembler(clipboard="some clip").assemble_fim(
            document=FimDocument(text="const test = "),
            cursor=Position(0, 13),
        )
        assert ctx.context_blob.endswith("// User's message:\nconst test = ")

    @pytest.mark.parametrize(
        "clip, included",
        [("12345", False), ("123456", True), ("x" * 499, True), ("x" * 500, False), ("", False)],
    )
    def test_clipboard_length_window(self, clip, included):
        ctx = _assembler(clipboard=clip).assemble_fim(
            document=FimDocument(text="abc"),
            cursor=Position(0, 3),
        )
        assert ("// Clipboard content:" in ctx.context_blob) is included

    def test_clipboard_failure_is_swallowed(self):
        def broken():
            raise RuntimeError("no clipboard")

        ctx = ContextAssembler(clipboard_reader=broken).assemble_fim(
            document=FimDocument(text="abc"),
            cursor=Position(0, 3),
        )
        assert "Clipboard" not in ctx.context_blob
        assert ctx.context_blob.endswith("abc")

    def test_blob_trimmed_from_head(self):
        ctx = _assembler().assemble_fim(
            document=FimDocument(text=""),
            cursor=Position(0, 0),
            prefix_override="a" * 5000,
            max_context_tokens=256,
        )
        assert len(ctx.context_blob) == 1024
        assert ctx.context_blob == "a" * 1024

    def test_recent_ranges_counted_in_metadata(self):
        edited = [
            RecentlyEditedRange(
                file_path="/p/a.py",
                range=Range(Position(0, 0), Position(1, 0)),
                edited_lines=("x = 1",),
                symbols=frozenset({"x"}),
                timestamp=1.0,
            )
        ]
        visited = [VisitedSnippet(file_path="/p/b.py", content="def b(): pass")]
        ctx = _assembler().assemble_fim(
            document=FimDocument(text="x"),
            cursor=Position(0, 1),
            recently_edited=edited,
            recently_visited=visited,
        )
        assert ctx.metadata["recently_edited"] == 1
        assert ctx.metadata["recently_visited"] == 1


def test_default_clipboard_without_gui_app(qapp):
    assert qt_clipboard_text() == ""
    ctx = ContextAssembler().assemble_fim(document=FimDocument(text="abc"), cursor=Position(0, 3))
    assert "Clipboard" not in ctx.context_blob


def test_infer_language_for_path():
    assert infer_language_for_path("x/y/z.rs") == "rust"
    assert infer_language_for_path("README") == "text"
