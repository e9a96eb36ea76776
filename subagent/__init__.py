"""
Background subagents.

Modules:
- types: SubagentType, SubagentStatus, Subagent, SubagentConfig, errors
- manager: SubagentManager (spawn, wait, kill, stats)
- executor: SubagentExecutor, the backend-driven executor function
"""

from subagent.types import (
    InvalidSubagentTypeError,
    MaxConcurrentReachedError,
    Subagent,
    SubagentConfig,
    SubagentError,
    SubagentKilledError,
    SubagentNotFoundError,
    SubagentStatus,
    SubagentTerminatedError,
    SubagentTimeoutError,
    SubagentType,
    WaitTimeoutError,
    default_config,
)
from subagent.manager import SubagentManager, spawn_default
from subagent.executor import SubagentExecutor

__all__ = [
    "InvalidSubagentTypeError",
    "MaxConcurrentReachedError",
    "Subagent",
    "SubagentConfig",
    "SubagentError",
    "SubagentExecutor",
    "SubagentKilledError",
    "SubagentManager",
    "SubagentNotFoundError",
    "SubagentStatus",
    "SubagentTerminatedError",
    "SubagentTimeoutError",
    "SubagentType",
    "WaitTimeoutError",
    "default_config",
    "spawn_default",
]
