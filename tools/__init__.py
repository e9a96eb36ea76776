"""
Tools the assistant can run against the working directory.
Every tool goes through a Backend, which keeps paths inside the working
directory. Failures are returned as ToolResults, never raised.
"""

from typing import Optional

from backend import Backend, LocalBackend
from tools._common import Tool, ToolResult, ToolInputError  # noqa: F401
from tools.registry import (  # noqa: F401
    ToolRegistry,
    ToolRegistryError,
    DuplicateToolError,
    ToolNotFoundError,
)
from tools.file_ops import FileReader, FileWriter  # noqa: F401
from tools.external_ops import CommandExecutor, is_dangerous, DANGEROUS_PATTERNS  # noqa: F401
from tools.search_ops import CodeSearcher, ProjectAnalyzer  # noqa: F401
from tools.git_ops import GitOperations, READ_ONLY_GIT_OPERATIONS, is_mutating  # noqa: F401
from tools.gitignore import IgnoreRules  # noqa: F401


def build_default_registry(work_dir: str = ".", command_timeout: int = 60,
                           backend: Optional[Backend] = None) -> ToolRegistry:
    """Registry with the six built-in tools bound to one working directory."""
    b = backend or LocalBackend(work_dir)
    registry = ToolRegistry()
    registry.register(FileReader(b))
    registry.register(FileWriter(b))
    registry.register(CommandExecutor(b, timeout=command_timeout))
    registry.register(CodeSearcher(b))
    registry.register(ProjectAnalyzer(b))
    registry.register(GitOperations(b))
    return registry
