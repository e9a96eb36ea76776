"""Diff engine: line diffs, range edits, rollback and previews."""

import io

import pytest
from rich.console import Console

from differ import (
    CHANGE_ADD,
    CHANGE_DELETE,
    CHANGE_MODIFY,
    DiffPreviewer,
    Differ,
    EditRange,
    EditRangeError,
    NoEditHistoryError,
    parse_range,
)


@pytest.mark.parametrize("content", ["", "a", "a\nb\nc", "x\n\n\ny\n"])
def test_identical_content_has_no_changes(content):
    diff = Differ().compute_diff("f.txt", content, content)
    assert diff.changes == []
    assert not diff.has_changes()


def test_compute_diff_classifies_lines():
    diff = Differ().compute_diff("f.txt", "a\nb\nc", "a\nB")
    kinds = [(c.kind, c.start_line) for c in diff.changes]
    assert kinds == [(CHANGE_MODIFY, 2), (CHANGE_DELETE, 3)]

    grown = Differ().compute_diff("f.txt", "a", "a\nb")
    assert [(c.kind, c.new_text) for c in grown.changes] == [(CHANGE_ADD, "b")]


def test_edit_and_rollback_round_trip():
    differ = Differ()
    new, diff = differ.apply_edit("f.txt", "a\nb\nc", EditRange(2, 2, "B"))

    assert new == "a\nB\nc"
    assert len(differ.get_history("f.txt")) == 1
    assert diff.counts()[CHANGE_MODIFY] == 1

    assert differ.rollback("f.txt") == "a\nb\nc"
    assert differ.get_history("f.txt") == []
    with pytest.raises(NoEditHistoryError):
        differ.rollback("f.txt")


def test_rollback_is_lifo():
    differ = Differ()
    v1, _ = differ.apply_edit("f", "1\n2\n3", EditRange(1, 1, "one"))
    v2, _ = differ.apply_edit("f", v1, EditRange(3, 3, "three"))
    assert v2 == "one\n2\nthree"
    assert differ.rollback("f") == v1
    assert differ.rollback("f") == "1\n2\n3"


def test_empty_text_deletes_lines():
    new, _ = Differ().apply_edit("f", "a\nb\nc\nd", EditRange(2, 3, ""))
    assert new == "a\nd"


def test_multi_line_replacement():
    new, _ = Differ().apply_edit("f", "a\nb\nc", EditRange(2, 2, "x\ny\nz"))
    assert new == "a\nx\ny\nz\nc"


@pytest.mark.parametrize("edit_range", [EditRange(0, 1), EditRange(4, 4), EditRange(2, 9), EditRange(3, 2)])
def test_out_of_range_edit_rejected(edit_range):
    differ = Differ()
    with pytest.raises(EditRangeError):
        differ.apply_edit("f", "a\nb\nc", edit_range)
    assert differ.get_history() == []


@pytest.mark.parametrize("value", ["0:5", "-1:5", "5:3", "a:b", "5-10", "", "1:2:3"])
def test_parse_range_rejects(value):
    with pytest.raises(EditRangeError):
        parse_range(value)


@pytest.mark.parametrize("value,start,end", [("1:1", 1, 1), ("10:20", 10, 20)])
def test_parse_range_accepts(value, start, end):
    r = parse_range(value)
    assert (r.start, r.end, r.text) == (start, end, "")


def test_history_across_paths_sorted_and_cleared():
    differ = Differ()
    differ.apply_edit("a", "x", EditRange(1, 1, "y"))
    differ.apply_edit("b", "x", EditRange(1, 1, "z"))
    assert [h.file_path for h in differ.get_history()] == ["a", "b"]
    differ.clear_history()
    assert differ.get_history() == []


def test_preview_lists_changes():
    diff = Differ().compute_diff("f.py", "a\nb", "a\nB\nc")
    text = DiffPreviewer().preview(diff)
    assert "📄 Arquivo: f.py" in text
    assert "Linha 2: MODIFICADA" in text
    assert "+ c" in text
    assert "📊 Mudanças: +1 ~1" in text


def test_preview_without_changes():
    diff = Differ().compute_diff("f.py", "same", "same")
    assert "✓ Sem mudanças" in DiffPreviewer().preview(diff)
    assert DiffPreviewer().compact_preview(diff) == "f.py: sem mudanças"


def test_compact_preview_truncates():
    old = "\n".join(str(i) for i in range(15))
    new = "\n".join(f"{i}!" for i in range(15))
    text = DiffPreviewer().compact_preview(Differ().compute_diff("f", old, new), max_changes=3)
    assert "... e mais 12 mudanças" in text


def test_preview_range_shows_context_and_new_text():
    content = "\n".join(f"line{i}" for i in range(1, 11))
    text = DiffPreviewer().preview_range("f", content, EditRange(5, 6, "new"))
    assert "Editando linhas 5-6" in text
    assert "Contexto antes:" in text
    assert "-   5 | line5" in text
    assert "+   5 | new" in text
    assert "Contexto depois:" in text


def test_preview_range_out_of_bounds_message():
    text = DiffPreviewer().preview_range("f", "a\nb", EditRange(5, 6))
    assert text.startswith("❌ Erro")


def test_render_writes_to_console():
    buf = io.StringIO()
    console = Console(file=buf, force_terminal=False, width=100)
    DiffPreviewer().render(Differ().compute_diff("f", "a", "b"), console)
    assert "MODIFICADA" in buf.getvalue()
