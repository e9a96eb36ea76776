"""
Line-granular diff engine with an undo history.
Used by the file-write handler to preview edits and roll them back.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.text import Text

logger = logging.getLogger(__name__)

CHANGE_ADD = "add"
CHANGE_DELETE = "delete"
CHANGE_MODIFY = "modify"

RULE = "─" * 60


class DiffError(Exception):
    """Base class for diff engine failures"""
    pass


class EditRangeError(DiffError, ValueError):
    """Malformed range literal or range outside the file"""
    pass


class NoEditHistoryError(DiffError):
    """Nothing to roll back for a path"""
    pass


@dataclass
class Change:
    """One changed line"""
    kind: str  # add, delete, modify
    start_line: int
    end_line: int
    old_text: str = ""
    new_text: str = ""


@dataclass
class FileDiff:
    file_path: str
    old_content: str
    new_content: str
    changes: List[Change] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def has_changes(self) -> bool:
        return bool(self.changes)

    def counts(self) -> Dict[str, int]:
        out = {CHANGE_ADD: 0, CHANGE_DELETE: 0, CHANGE_MODIFY: 0}
        for c in self.changes:
            out[c.kind] += 1
        return out


@dataclass
class EditRange:
    """1-based inclusive line range plus replacement text"""
    start: int
    end: int
    text: str = ""


@dataclass
class EditHistory:
    file_path: str
    old_content: str
    diff: FileDiff
    edit_range: EditRange
    timestamp: float = field(default_factory=time.time)


def parse_range(value: str) -> EditRange:
    """Parse a "start:end" literal into an EditRange with empty text."""
    parts = (value or "").split(":")
    if len(parts) != 2:
        raise EditRangeError(f"invalid range format, expected 'start:end': {value!r}")
    try:
        start = int(parts[0])
        end = int(parts[1])
    except ValueError:
        raise EditRangeError(f"invalid range format, expected 'start:end': {value!r}")
    if start < 1 or end < 1:
        raise EditRangeError("line numbers must be >= 1")
    if start > end:
        raise EditRangeError("start line must be <= end line")
    return EditRange(start=start, end=end)


class Differ:
    """Computes diffs, applies range edits and keeps a per-path undo stack."""

    def __init__(self):
        self._history: Dict[str, List[EditHistory]] = {}
        self._lock = threading.Lock()

    def compute_diff(self, file_path: str, old_content: str, new_content: str) -> FileDiff:
        old_lines = old_content.split("\n")
        new_lines = new_content.split("\n")
        changes: List[Change] = []
        for i in range(max(len(old_lines), len(new_lines))):
            line_no = i + 1
            has_old = i < len(old_lines)
            has_new = i < len(new_lines)
            if has_old and has_new:
                if old_lines[i] != new_lines[i]:
                    changes.append(Change(CHANGE_MODIFY, line_no, line_no, old_lines[i], new_lines[i]))
            elif has_new:
                changes.append(Change(CHANGE_ADD, line_no, line_no, "", new_lines[i]))
            else:
                changes.append(Change(CHANGE_DELETE, line_no, line_no, old_lines[i], ""))
        return FileDiff(file_path=file_path, old_content=old_content, new_content=new_content, changes=changes)

    def apply_edit(self, file_path: str, content: str, edit_range: EditRange) -> Tuple[str, FileDiff]:
        """Replace lines start..end with the range text. Empty text deletes the lines."""
        lines = content.split("\n")
        total = len(lines)
        if edit_range.start < 1 or edit_range.start > total:
            raise EditRangeError(f"start line {edit_range.start} out of range (1-{total})")
        if edit_range.end < edit_range.start or edit_range.end > total:
            raise EditRangeError(f"end line {edit_range.end} out of range ({edit_range.start}-{total})")

        replacement = edit_range.text.split("\n") if edit_range.text else []
        new_lines = lines[:edit_range.start - 1] + replacement + lines[edit_range.end:]
        new_content = "\n".join(new_lines)
        diff = self.compute_diff(file_path, content, new_content)

        entry = EditHistory(file_path=file_path, old_content=content, diff=diff, edit_range=edit_range)
        with self._lock:
            self._history.setdefault(file_path, []).append(entry)
        logger.debug(f"Applied edit {edit_range.start}:{edit_range.end} to {file_path}")
        return new_content, diff

    def rollback(self, file_path: str) -> str:
        """Pop the latest edit for a path and return the content before it."""
        with self._lock:
            stack = self._history.get(file_path)
            if not stack:
                raise NoEditHistoryError(f"no edit history found for {file_path}")
            entry = stack.pop()
            if not stack:
                del self._history[file_path]
        logger.debug(f"Rolled back edit on {file_path}")
        return entry.old_content

    def get_history(self, file_path: Optional[str] = None) -> List[EditHistory]:
        with self._lock:
            if file_path is not None:
                return list(self._history.get(file_path, []))
            entries = [e for stack in self._history.values() for e in stack]
        return sorted(entries, key=lambda e: e.timestamp)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


# ============================================================
# Previews
# ============================================================

class DiffPreviewer:
    """Plain-text previews for confirmation prompts, rich rendering for the terminal."""

    def preview(self, diff: FileDiff) -> str:
        out = [f"📄 Arquivo: {diff.file_path}", RULE]
        if not diff.changes:
            out.append("✓ Sem mudanças")
            return "\n".join(out) + "\n"
        counts = diff.counts()
        summary = []
        if counts[CHANGE_ADD]:
            summary.append(f"+{counts[CHANGE_ADD]}")
        if counts[CHANGE_DELETE]:
            summary.append(f"-{counts[CHANGE_DELETE]}")
        if counts[CHANGE_MODIFY]:
            summary.append(f"~{counts[CHANGE_MODIFY]}")
        out.append(f"📊 Mudanças: {' '.join(summary)}")
        out.append("")
        for i, change in enumerate(diff.changes, 1):
            out.extend(self._change_lines(change, i))
            out.append("")
        out.append(RULE)
        return "\n".join(out) + "\n"

    @staticmethod
    def _change_lines(change: Change, index: int) -> List[str]:
        if change.kind == CHANGE_ADD:
            return [f"[{index}] Linha {change.start_line}: ADICIONADA", f"+ {change.new_text}"]
        if change.kind == CHANGE_DELETE:
            return [f"[{index}] Linha {change.start_line}: DELETADA", f"- {change.old_text}"]
        return [
            f"[{index}] Linha {change.start_line}: MODIFICADA",
            f"- {change.old_text}",
            f"+ {change.new_text}",
        ]

    def compact_preview(self, diff: FileDiff, max_changes: int = 10) -> str:
        """Unified-style summary, one line per change."""
        if not diff.changes:
            return f"{diff.file_path}: sem mudanças"
        out = [f"{diff.file_path}:"]
        for change in diff.changes[:max_changes]:
            if change.kind in (CHANGE_DELETE, CHANGE_MODIFY):
                out.append(f"  {change.start_line:4} - {change.old_text}")
            if change.kind in (CHANGE_ADD, CHANGE_MODIFY):
                out.append(f"  {change.start_line:4} + {change.new_text}")
        if len(diff.changes) > max_changes:
            out.append(f"  ... e mais {len(diff.changes) - max_changes} mudanças")
        return "\n".join(out)

    def preview_range(self, file_path: str, old_content: str, edit_range: EditRange) -> str:
        lines = old_content.split("\n")
        total = len(lines)
        if edit_range.start < 1 or edit_range.start > total:
            return f"❌ Erro: linha inicial {edit_range.start} fora do range (1-{total})\n"
        if edit_range.end < edit_range.start or edit_range.end > total:
            return f"❌ Erro: linha final {edit_range.end} fora do range ({edit_range.start}-{total})\n"

        out = [
            f"📄 Arquivo: {file_path}",
            f"📝 Editando linhas {edit_range.start}-{edit_range.end}",
            RULE,
            "",
        ]
        context_start = max(edit_range.start - 3, 1)
        if context_start < edit_range.start:
            out.append("Contexto antes:")
            for n in range(context_start, edit_range.start):
                out.append(f"  {n:3} | {lines[n - 1]}")
            out.append("")

        out.append("Linhas a remover:")
        for n in range(edit_range.start, edit_range.end + 1):
            out.append(f"- {n:3} | {lines[n - 1]}")
        out.append("")

        if edit_range.text:
            out.append("Novo texto:")
            for i, line in enumerate(edit_range.text.split("\n")):
                out.append(f"+ {edit_range.start + i:3} | {line}")
        else:
            out.append("(linhas serão deletadas)")
        out.append("")

        context_end = min(edit_range.end + 3, total)
        if context_end > edit_range.end:
            out.append("Contexto depois:")
            for n in range(edit_range.end + 1, context_end + 1):
                out.append(f"  {n:3} | {lines[n - 1]}")
        out.append(RULE)
        return "\n".join(out) + "\n"

    def render(self, diff: FileDiff, console: Console) -> None:
        """Print a colored version of preview() to a rich console."""
        for line in self.preview(diff).splitlines():
            text = Text(line)
            if line.startswith("+ "):
                text.stylize("green")
            elif line.startswith("- "):
                text.stylize("red")
            elif line.startswith("📄") or line.startswith("["):
                text.stylize("cyan")
            elif line.startswith("📊"):
                text.stylize("yellow")
            console.print(text)
