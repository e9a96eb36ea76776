"""Search and discovery tools: code_searcher and project_analyzer."""

import json
import os
import shutil
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from cancellation import CancelToken
from tools._common import Tool, ToolResult, require_str, optional_str, optional_int
from tools.gitignore import IgnoreRules, ALWAYS_SKIP_DIRS

logger = logging.getLogger(__name__)

MAX_MATCHES_PER_FILE = 50
DEFAULT_MAX_RESULTS = 200
SEARCH_TIMEOUT = 30

ANALYSIS_TYPES = ("structure", "stats", "files")
DEFAULT_TREE_DEPTH = 3


def _has_ripgrep() -> bool:
    return shutil.which("rg") is not None


def _strip_dot(path: str) -> str:
    return path[2:] if path.startswith("./") or path.startswith(".\\") else path


def _parse_rg_json(output: str) -> List[Dict[str, Any]]:
    matches = []
    for raw in output.splitlines():
        try:
            event = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if event.get("type") != "match":
            continue
        data = event.get("data") or {}
        matches.append({
            "file": _strip_dot((data.get("path") or {}).get("text", "")),
            "line": int(data.get("line_number") or 0),
            "content": ((data.get("lines") or {}).get("text") or "").rstrip("\r\n"),
        })
    return matches


def _parse_grep_lines(output: str) -> List[Dict[str, Any]]:
    """Parse "file:line:content" lines (grep -n and findstr /N)."""
    matches = []
    for raw in output.splitlines():
        parts = raw.split(":", 2)
        if len(parts) < 3 or not parts[1].isdigit():
            continue
        matches.append({"file": _strip_dot(parts[0]), "line": int(parts[1]), "content": parts[2]})
    return matches


class CodeSearcher(Tool):
    """Regex search over the working directory via ripgrep, grep or findstr."""

    name = "code_searcher"
    description = "Search code in the working directory (ripgrep, falling back to grep)"

    def _command(self, pattern: str, file_pattern: str) -> Tuple[str, List[str]]:
        if _has_ripgrep():
            args = ["rg", "--json", "--smart-case", "--max-count", str(MAX_MATCHES_PER_FILE)]
            if file_pattern:
                args += ["-g", file_pattern]
            return "ripgrep", args + ["--", pattern, "."]
        if os.name == "nt":
            return "findstr", ["findstr", "/S", "/N", "/I", "/R", pattern, file_pattern or "*.*"]
        args = ["grep", "-rn", "-i", "-I", "--color=never", "-m", str(MAX_MATCHES_PER_FILE)]
        for skip in sorted(ALWAYS_SKIP_DIRS):
            args.append(f"--exclude-dir={skip}")
        if file_pattern:
            args.append(f"--include={file_pattern}")
        return "grep", args + ["-e", pattern, "."]

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        query = require_str(params, "query")
        pattern = optional_str(params, "pattern") or query
        file_pattern = optional_str(params, "file_pattern")
        max_results = optional_int(params, "max_results", DEFAULT_MAX_RESULTS)

        tool, args = self._command(pattern, file_pattern)
        stdout, stderr, rc = self.backend.run_args(args, cwd=".", timeout=SEARCH_TIMEOUT)
        matches = _parse_rg_json(stdout) if tool == "ripgrep" else _parse_grep_lines(stdout)

        # exit 1 is "no matches" for all three tools
        if rc not in (0, 1) and not matches:
            return ToolResult.fail(
                f"{tool} failed (exit {rc}): {stderr.strip()}".rstrip(": "),
                query=query, tool=tool, matches=[], count=0,
            )
        if max_results > 0:
            matches = matches[:max_results]
        logger.debug(f"{tool} found {len(matches)} matches for {pattern!r}")
        return ToolResult.ok(
            f"{len(matches)} matches para '{query}'",
            query=query, pattern=pattern, tool=tool, matches=matches, count=len(matches),
        )


class ProjectAnalyzer(Tool):
    """Project structure tree, size statistics and file listing, .gitignore-aware."""

    name = "project_analyzer"
    description = "Analyze project structure (types: structure, stats, files)"

    def _walk(self, rel: str, rules: IgnoreRules, max_depth: Optional[int],
              depth: int = 0) -> Iterator[Tuple[str, Dict[str, Any], int]]:
        """Yield (rel_path, entry, depth) for every non-ignored, non-hidden entry."""
        try:
            entries = self.backend.list_dir(rel or ".")
        except OSError as e:
            logger.debug(f"Cannot list {rel or '.'}: {e}")
            return
        for entry in entries:
            name = entry.get("name", "")
            if not name or name.startswith("."):
                continue
            is_dir = entry.get("type") == "directory"
            child_rel = f"{rel}/{name}" if rel else name
            if rules.is_ignored(child_rel, is_dir):
                continue
            yield child_rel, entry, depth
            if is_dir and (max_depth is None or depth + 1 < max_depth):
                yield from self._walk(child_rel, rules, max_depth, depth + 1)

    def _structure(self, target: str, rules: IgnoreRules, max_depth: int) -> List[str]:
        root_name = os.path.basename(self.backend.resolve_path(target)) or target
        lines = [f"{root_name}/"]
        self._render(target if target != "." else "", rules, max_depth, "", lines, 0)
        return lines

    def _render(self, rel: str, rules: IgnoreRules, max_depth: int, prefix: str,
                lines: List[str], depth: int) -> None:
        try:
            entries = self.backend.list_dir(rel or ".")
        except OSError:
            return
        visible = []
        for entry in entries:
            name = entry.get("name", "")
            if not name or name.startswith("."):
                continue
            is_dir = entry.get("type") == "directory"
            child_rel = f"{rel}/{name}" if rel else name
            if not rules.is_ignored(child_rel, is_dir):
                visible.append((child_rel, name, is_dir))
        # directories first
        visible.sort(key=lambda v: (not v[2], v[1]))
        for i, (child_rel, name, is_dir) in enumerate(visible):
            last = i == len(visible) - 1
            connector = "└── " if last else "├── "
            lines.append(f"{prefix}{connector}{name}{'/' if is_dir else ''}")
            if is_dir and depth + 1 < max_depth:
                self._render(child_rel, rules, max_depth, prefix + ("    " if last else "│   "), lines, depth + 1)

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        analysis = optional_str(params, "type", "structure") or "structure"
        if analysis not in ANALYSIS_TYPES:
            return ToolResult.fail(f"invalid analysis type {analysis!r}, expected one of: {', '.join(ANALYSIS_TYPES)}")
        target = optional_str(params, "path", ".") or "."
        max_depth = optional_int(params, "max_depth", DEFAULT_TREE_DEPTH)
        if not self.backend.is_dir(target):
            return ToolResult.fail(f"Not a directory: {target}")

        rules = IgnoreRules.for_directory(self.backend.working_directory)
        start = "" if target == "." else self.backend.relative_path(target)

        if analysis == "structure":
            tree = self._structure(start or ".", rules, max(1, max_depth))
            return ToolResult.ok("\n".join(tree), type=analysis, tree=tree, root=tree[0].rstrip("/"))

        if analysis == "files":
            files = sorted(rel for rel, e, _ in self._walk(start, rules, None) if e.get("type") == "file")
            return ToolResult.ok(f"{len(files)} arquivos", type=analysis, files=files, count=len(files))

        total_files = total_dirs = total_size = 0
        file_types: Dict[str, int] = {}
        for _, entry, _ in self._walk(start, rules, None):
            if entry.get("type") == "directory":
                total_dirs += 1
                continue
            total_files += 1
            total_size += int(entry.get("size") or 0)
            ext = entry.get("ext") or "(none)"
            file_types[ext] = file_types.get(ext, 0) + 1
        return ToolResult.ok(
            f"{total_files} arquivos, {total_dirs} diretórios",
            type=analysis, total_files=total_files, total_dirs=total_dirs,
            total_size=total_size, file_types=file_types,
        )
