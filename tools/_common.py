"""Shared types for the tools package: the result contract and the Tool base class."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from backend import Backend
from cancellation import CancelToken

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Result from executing a tool. Failed results always carry an error."""
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    message: str = ""
    error: str = ""

    @classmethod
    def ok(cls, message: str = "", **data: Any) -> "ToolResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "ToolResult":
        return cls(success=False, data=data, error=error or "unknown error")


class ToolInputError(ValueError):
    """Bad or missing tool parameter"""
    pass


def require_str(params: Dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolInputError(f"{key} is required")
    return value


def optional_str(params: Dict[str, Any], key: str, default: str = "") -> str:
    value = params.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ToolInputError(f"{key} must be a string")
    return value


def optional_int(params: Dict[str, Any], key: str, default: int) -> int:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ToolInputError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ToolInputError(f"{key} must be an integer")


def optional_str_list(params: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = params.get(key)
    if value is None or value == "" or value == []:
        return list(default)
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ToolInputError(f"{key} must be a string or a list of strings")


class Tool(ABC):
    """
    A named side-effecting capability.

    execute() treats params as untrusted: missing keys, wrong types and paths
    outside the working directory come back as failed ToolResults, never as
    exceptions.
    """

    name: str = ""
    description: str = ""

    def __init__(self, backend: Backend):
        self.backend = backend

    def requires_confirmation(self) -> bool:
        return False

    def execute(self, params: Optional[Dict[str, Any]], cancel: Optional[CancelToken] = None) -> ToolResult:
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return ToolResult.fail("params must be a mapping")
        try:
            result = self._run(params, cancel)
        except ValueError as e:
            # ToolInputError and path-escape errors
            return ToolResult.fail(str(e))
        except Exception as e:
            logger.exception(f"Tool {self.name} failed")
            return ToolResult.fail(str(e) or type(e).__name__)
        logger.info(f"Tool {self.name}: success={result.success}")
        return result

    @abstractmethod
    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        """Tool body. May raise ValueError/ToolInputError for bad input."""
