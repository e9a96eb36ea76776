"""File tools: file_reader and file_writer."""

import base64
import difflib
import os
import logging
from typing import Any, Dict, Optional

from cancellation import CancelToken
from tools._common import Tool, ToolResult, ToolInputError, require_str, optional_str

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}

WRITE_MODES = ("create", "append", "replace")


def _format_size(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"


def _compact_diff(old_content: str, new_content: str, path: str, max_lines: int = 60) -> str:
    """Compact unified diff of a write, for display."""
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)
    diff = list(difflib.unified_diff(old_lines, new_lines, fromfile=path, tofile=path, lineterm=""))
    if not diff:
        return ""
    if len(diff) > max_lines:
        diff = diff[:max_lines] + [f"... ({len(diff) - max_lines} more diff lines)"]
    return "\n".join(line.rstrip() for line in diff)


def count_lines(content: str) -> int:
    if not content:
        return 0
    return len(content.splitlines())


class FileReader(Tool):
    """Reads text files, or images as base64."""

    name = "file_reader"
    description = "Read a file inside the working directory (text, or images as base64)"

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        path = require_str(params, "file_path")
        b = self.backend
        if not b.file_exists(path):
            return ToolResult.fail(f"File not found: {path}")
        if b.is_dir(path):
            return ToolResult.fail(f"Not a file: {path}")

        size = b.file_size(path)
        ext = os.path.splitext(path)[1].lower()
        mime = IMAGE_MIME_TYPES.get(ext)
        if mime:
            encoded = base64.b64encode(b.read_bytes(path)).decode("ascii")
            return ToolResult.ok(
                f"Imagem lida: {path} ({_format_size(size)})",
                type="image", file_path=path, mime_type=mime, base64=encoded, size=size,
            )

        content = b.read_file(path)
        lines = count_lines(content)
        return ToolResult.ok(
            f"Arquivo lido: {path} ({lines} linhas, {_format_size(size)})",
            type="text", file_path=path, content=content, size=size, lines=lines,
        )


class FileWriter(Tool):
    """Creates, appends to, or does string replacement in files."""

    name = "file_writer"
    description = "Write a file inside the working directory (modes: create, append, replace)"

    def requires_confirmation(self) -> bool:
        return True

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        path = require_str(params, "file_path")
        mode = optional_str(params, "mode", "create") or "create"
        if mode not in WRITE_MODES:
            return ToolResult.fail(f"invalid mode {mode!r}, expected one of: {', '.join(WRITE_MODES)}")
        b = self.backend

        if mode == "replace":
            return self._replace(path, params)

        content = params.get("content")
        if not isinstance(content, str):
            raise ToolInputError("content is required")
        if b.file_exists(path) and b.is_dir(path):
            return ToolResult.fail(f"Not a file: {path}")

        if mode == "append":
            b.append_file(path, content)
            size = b.file_size(path)
            return ToolResult.ok(
                f"✓ Conteúdo adicionado a {path}",
                path=path, mode=mode, size=size, bytes_written=len(content.encode("utf-8")),
            )

        old_content = b.read_file(path) if b.file_exists(path) else None
        b.write_file(path, content)
        size = b.file_size(path)
        if old_content is None:
            return ToolResult.ok(
                f"✓ Arquivo criado: {path} ({count_lines(content)} linhas)",
                path=path, mode=mode, size=size, created=True,
            )
        return ToolResult.ok(
            f"✓ Arquivo atualizado: {path}",
            path=path, mode=mode, size=size, created=False,
            diff=_compact_diff(old_content, content, path),
        )

    def _replace(self, path: str, params: Dict[str, Any]) -> ToolResult:
        old_text = require_str(params, "old_text")
        new_text = params.get("new_text")
        if not isinstance(new_text, str):
            raise ToolInputError("new_text is required")
        b = self.backend
        if not b.file_exists(path) or b.is_dir(path):
            return ToolResult.fail(f"File not found: {path}")

        content = b.read_file(path)
        replacements = content.count(old_text)
        if replacements == 0:
            return ToolResult.fail(f"old_text not found in {path}", path=path, replacements=0)
        new_content = content.replace(old_text, new_text)
        b.write_file(path, new_content)
        return ToolResult.ok(
            f"✓ {replacements} substituição(ões) em {path}",
            path=path, mode="replace", size=b.file_size(path), replacements=replacements,
            diff=_compact_diff(content, new_content, path),
        )
