"""Name-keyed tool registry."""

import logging
import threading
from typing import Any, Dict, List, Optional

from cancellation import CancelToken
from tools._common import Tool, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistryError(Exception):
    pass


class DuplicateToolError(ToolRegistryError):
    pass


class ToolNotFoundError(ToolRegistryError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "tool not found"


class ToolRegistry:
    """Concurrent-safe mapping from tool name to Tool. Names are unique."""

    def __init__(self):
        self._tools: Dict[str, Tool] = {}
        self._lock = threading.RLock()

    def register(self, tool: Tool) -> None:
        with self._lock:
            if tool.name in self._tools:
                raise DuplicateToolError(f"tool {tool.name} already registered")
            self._tools[tool.name] = tool
        logger.debug(f"Registered tool {tool.name}")

    def get(self, name: str) -> Tool:
        with self._lock:
            tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f"tool {name} not found")
        return tool

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list(self) -> List[str]:
        with self._lock:
            return sorted(self._tools)

    def tools(self) -> List[Tool]:
        with self._lock:
            return [self._tools[name] for name in sorted(self._tools)]

    def execute(self, name: str, params: Optional[Dict[str, Any]] = None,
                cancel: Optional[CancelToken] = None) -> ToolResult:
        """Run a tool by name. Only an unknown name raises; tool failures are results."""
        tool = self.get(name)
        return tool.execute(params or {}, cancel)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)
