"""
Subagent data types: roles, lifecycle states, per-role defaults and errors.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from cancellation import CancelToken


class SubagentType(str, Enum):
    EXPLORE = "Explore"
    PLAN = "Plan"
    EXECUTE = "Execute"
    GENERAL = "General"

    def __str__(self) -> str:
        return self.value


class SubagentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    KILLED = "killed"

    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def is_success(self) -> bool:
        return self is SubagentStatus.COMPLETED

    def __str__(self) -> str:
        return self.value


_TERMINAL = frozenset({
    SubagentStatus.COMPLETED, SubagentStatus.FAILED,
    SubagentStatus.TIMEOUT, SubagentStatus.KILLED,
})


# ============================================================
# Errors
# ============================================================

class SubagentError(Exception):
    pass


class InvalidSubagentTypeError(SubagentError, ValueError):
    pass


class MaxConcurrentReachedError(SubagentError):
    pass


class SubagentNotFoundError(SubagentError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "subagent not found"


class SubagentTerminatedError(SubagentError):
    """Kill on a task that already finished"""
    pass


class WaitTimeoutError(SubagentError, TimeoutError):
    """The wait was abandoned; the task keeps running"""
    pass


class SubagentTimeoutError(SubagentError, TimeoutError):
    """Recorded on a task that hit its deadline"""
    pass


class SubagentKilledError(SubagentError):
    """Recorded on a task that was killed"""
    pass


# ============================================================
# Configuration
# ============================================================

@dataclass
class SubagentConfig:
    type: SubagentType
    prompt: str = ""
    model: str = ""
    work_dir: str = "."
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: float = 300.0  # seconds
    max_memory_mb: int = 512
    max_cpu_cores: int = 1


_DEFAULTS: Dict[SubagentType, Dict[str, Any]] = {
    SubagentType.EXPLORE: {"model": "qwen2.5-coder:1.5b", "max_tokens": 2048, "timeout": 120.0},
    SubagentType.PLAN: {"model": "qwen2.5-coder:7b", "max_tokens": 8192, "timeout": 600.0},
    SubagentType.EXECUTE: {"model": "qwen2.5-coder:7b", "max_tokens": 4096, "timeout": 900.0, "max_memory_mb": 1024},
    SubagentType.GENERAL: {"model": "qwen2.5-coder:7b", "max_tokens": 4096, "timeout": 300.0},
}


def parse_subagent_type(value: Any) -> SubagentType:
    if isinstance(value, SubagentType):
        return value
    for t in SubagentType:
        if str(value).strip().lower() == t.value.lower():
            return t
    raise InvalidSubagentTypeError(f"invalid agent type: {value}")


def default_config(agent_type: Any, prompt: str = "") -> SubagentConfig:
    """Role defaults (model hint, token budget, timeout, memory)."""
    t = parse_subagent_type(agent_type)
    return SubagentConfig(type=t, prompt=prompt, **_DEFAULTS[t])


# ============================================================
# Subagent
# ============================================================

@dataclass(eq=False)
class Subagent:
    """
    One background task. Only its worker and Kill mutate it, always under
    its own lock. done is set exactly once, after the terminal transition.
    """
    type: SubagentType
    prompt: str
    model: str
    work_dir: str
    max_tokens: int
    temperature: float
    timeout: float
    max_memory_mb: int
    max_cpu_cores: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    status: SubagentStatus = SubagentStatus.PENDING
    result: str = ""
    error: Optional[BaseException] = None
    cancel: CancelToken = field(default_factory=CancelToken)
    done: threading.Event = field(default_factory=threading.Event)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_config(cls, config: SubagentConfig) -> "Subagent":
        return cls(
            type=config.type,
            prompt=config.prompt,
            model=config.model,
            work_dir=config.work_dir,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_memory_mb=config.max_memory_mb,
            max_cpu_cores=config.max_cpu_cores,
            cancel=CancelToken(timeout=config.timeout if config.timeout and config.timeout > 0 else None),
        )

    def get_status(self) -> SubagentStatus:
        with self._lock:
            return self.status

    def is_terminal(self) -> bool:
        return self.get_status().is_terminal()

    def get_result(self) -> str:
        with self._lock:
            return self.result

    def get_error(self) -> Optional[BaseException]:
        with self._lock:
            return self.error

    def mark_running(self) -> bool:
        """Pending -> Running. False if the task is no longer pending."""
        with self._lock:
            if self.status is not SubagentStatus.PENDING:
                return False
            self.status = SubagentStatus.RUNNING
            self.started_at = time.time()
            return True

    def finish(self, status: SubagentStatus, result: str = "",
               error: Optional[BaseException] = None) -> bool:
        """Move to a terminal state. False if already terminal."""
        with self._lock:
            if self.status.is_terminal():
                return False
            self.status = status
            self.result = result
            self.error = error
            self.completed_at = time.time()
            return True

    def duration(self) -> float:
        """Seconds from start to completion (or to now while running)."""
        with self._lock:
            if self.started_at is None:
                return 0.0
            end = self.completed_at if self.completed_at is not None else time.time()
            return max(0.0, end - self.started_at)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "id": self.id,
                "type": self.type.value,
                "prompt": self.prompt,
                "model": self.model,
                "status": self.status.value,
                "result": self.result,
                "error": str(self.error) if self.error else "",
                "created_at": self.created_at,
                "started_at": self.started_at,
                "completed_at": self.completed_at,
                "work_dir": self.work_dir,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "timeout": self.timeout,
                "max_memory_mb": self.max_memory_mb,
                "max_cpu_cores": self.max_cpu_cores,
            }
