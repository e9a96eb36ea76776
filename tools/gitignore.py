""".gitignore-aware path filtering for project walks."""

import os
import logging
import threading
from typing import Dict, Optional, Set, Tuple

import pathspec

logger = logging.getLogger(__name__)

ALWAYS_SKIP_DIRS: Set[str] = {
    ".git", "node_modules", "__pycache__", ".venv", "venv", "env",
    ".mypy_cache", ".pytest_cache", ".tox", ".eggs",
    "dist", "build", ".next", ".cache", "coverage", "htmlcov",
}

ALWAYS_SKIP_EXTENSIONS: Set[str] = {
    ".pyc", ".pyo", ".so", ".dylib", ".o", ".a", ".class",
}


class IgnoreRules:
    """Hardcoded skips plus the project's .gitignore, if it has one."""

    # root -> (.gitignore signature, rules); a changed signature reloads
    _cache: Dict[str, Tuple[Optional[Tuple[int, int]], "IgnoreRules"]] = {}
    _cache_lock = threading.Lock()

    def __init__(self, spec: Optional[pathspec.PathSpec] = None):
        self.spec = spec

    @staticmethod
    def _signature(gitignore_path: str) -> Optional[Tuple[int, int]]:
        try:
            st = os.stat(gitignore_path)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    @classmethod
    def for_directory(cls, working_directory: str) -> "IgnoreRules":
        """Rules for the project root, reloaded when its .gitignore changes."""
        root = os.path.abspath(working_directory)
        gitignore_path = os.path.join(root, ".gitignore")
        signature = cls._signature(gitignore_path)
        with cls._cache_lock:
            cached = cls._cache.get(root)
            if cached is not None and cached[0] == signature:
                return cached[1]
        spec = None
        if signature is not None:
            try:
                with open(gitignore_path, "r", encoding="utf-8", errors="replace") as f:
                    spec = pathspec.PathSpec.from_lines("gitwildmatch", f)
            except OSError as e:
                logger.debug(f"Failed to read .gitignore: {e}")
        rules = cls(spec)
        with cls._cache_lock:
            cls._cache[root] = (signature, rules)
        logger.debug(f"Loaded ignore rules for {root}")
        return rules

    @classmethod
    def invalidate(cls, working_directory: Optional[str] = None) -> None:
        with cls._cache_lock:
            if working_directory:
                cls._cache.pop(os.path.abspath(working_directory), None)
            else:
                cls._cache.clear()

    def is_ignored(self, rel_path: str, is_dir: bool) -> bool:
        name = os.path.basename(rel_path.rstrip("/"))
        if is_dir and name in ALWAYS_SKIP_DIRS:
            return True
        if not is_dir and os.path.splitext(name)[1] in ALWAYS_SKIP_EXTENSIONS:
            return True
        if self.spec is not None:
            return self.spec.match_file(rel_path + "/" if is_dir else rel_path)
        return False
