"""
Subagent supervisor.

Spawns bounded background tasks, tracks their lifecycle, and keeps the
counters consistent: one mutex guards the task map and every counter, and it
is never held while an executor runs or while a caller waits.
"""

import dataclasses
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set

from cancellation import CancelToken, CAUSE_DEADLINE
from subagent.types import (
    MaxConcurrentReachedError,
    Subagent,
    SubagentConfig,
    SubagentKilledError,
    SubagentNotFoundError,
    SubagentStatus,
    SubagentTerminatedError,
    SubagentTimeoutError,
    SubagentType,
    WaitTimeoutError,
    default_config,
    parse_subagent_type,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 5

# executor(cancel, agent) -> result text; raises on failure.
# It must return promptly once cancel fires.
ExecutorFunc = Callable[[CancelToken, Subagent], str]


class SubagentManager:
    """Supervisor for background backend tasks. Spawn fails fast at the limit; nothing is queued."""

    def __init__(self, executor: ExecutorFunc, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        self._executor = executor
        self._agents: Dict[str, Subagent] = {}
        self._active_ids: Set[str] = set()
        self._max_concurrent = max(1, max_concurrent)
        self._total_spawned = 0
        self._total_completed = 0
        self._total_failed = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Spawn / worker
    # ------------------------------------------------------------------

    def spawn(self, config: SubagentConfig) -> Subagent:
        config = dataclasses.replace(config, type=parse_subagent_type(config.type))
        with self._lock:
            if len(self._active_ids) >= self._max_concurrent:
                raise MaxConcurrentReachedError(f"max concurrent agents reached ({self._max_concurrent})")
            agent = Subagent.from_config(config)
            self._agents[agent.id] = agent
            self._active_ids.add(agent.id)
            self._total_spawned += 1
        thread = threading.Thread(target=self._run, args=(agent,), name=f"subagent-{agent.id[:8]}", daemon=True)
        thread.start()
        logger.info(f"Spawned {agent.type.value} subagent {agent.id} (model={agent.model})")
        return agent

    def _run(self, agent: Subagent) -> None:
        try:
            if agent.cancel.cancelled or not agent.mark_running():
                # killed (or timed out) before the worker started
                self._finish_cancelled(agent)
                return
            try:
                result = self._executor(agent.cancel, agent)
                error: Optional[BaseException] = None
            except Exception as e:
                result, error = "", e

            if agent.cancel.cancelled:
                self._finish_cancelled(agent)
            elif error is not None:
                agent.finish(SubagentStatus.FAILED, error=error)
            else:
                agent.finish(SubagentStatus.COMPLETED, result=result or "")
        finally:
            if not agent.is_terminal():
                agent.finish(SubagentStatus.FAILED, error=SubagentKilledError("agent worker exited unexpectedly"))
            agent.cancel.release()
            self._on_complete(agent)
            agent.done.set()

    @staticmethod
    def _finish_cancelled(agent: Subagent) -> None:
        if agent.cancel.cause == CAUSE_DEADLINE:
            agent.finish(SubagentStatus.TIMEOUT, error=SubagentTimeoutError(f"agent timeout after {agent.timeout:g}s"))
        else:
            agent.finish(SubagentStatus.KILLED, error=SubagentKilledError("agent killed"))

    def _on_complete(self, agent: Subagent) -> None:
        status = agent.get_status()
        with self._lock:
            if agent.id not in self._active_ids:
                # forgotten by clear_all
                return
            self._active_ids.discard(agent.id)
            if status is SubagentStatus.COMPLETED:
                self._total_completed += 1
            else:
                self._total_failed += 1
        logger.info(f"Subagent {agent.id} finished: {status.value} ({agent.duration():.1f}s)")

    # ------------------------------------------------------------------
    # Wait / kill
    # ------------------------------------------------------------------

    @staticmethod
    def _outcome(agent: Subagent) -> str:
        error = agent.get_error()
        if error is not None:
            raise error
        return agent.get_result()

    def wait(self, agent_id: str) -> str:
        """Block until the task is terminal; return its result or raise its error."""
        agent = self.get(agent_id)
        agent.done.wait()
        return self._outcome(agent)

    def wait_with_timeout(self, agent_id: str, timeout: float) -> str:
        """Like wait(), but gives up after timeout seconds. The task keeps running."""
        agent = self.get(agent_id)
        if not agent.done.wait(timeout):
            raise WaitTimeoutError(f"wait timeout after {timeout:g}s")
        return self._outcome(agent)

    def kill(self, agent_id: str) -> None:
        agent = self.get(agent_id)
        status = agent.get_status()
        if status.is_terminal():
            raise SubagentTerminatedError(f"agent already terminated with status: {status.value}")
        logger.info(f"Killing subagent {agent_id}")
        agent.cancel.cancel()
        agent.done.wait()

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    def get(self, agent_id: str) -> Subagent:
        with self._lock:
            agent = self._agents.get(agent_id)
        if agent is None:
            raise SubagentNotFoundError(f"agent not found: {agent_id}")
        return agent

    def list(self) -> List[Subagent]:
        with self._lock:
            agents = list(self._agents.values())
        return sorted(agents, key=lambda a: a.created_at)

    def list_by_status(self, status: SubagentStatus) -> List[Subagent]:
        return [a for a in self.list() if a.get_status() is status]

    def list_by_type(self, agent_type: Any) -> List[Subagent]:
        t = parse_subagent_type(agent_type)
        return [a for a in self.list() if a.type is t]

    def cleanup(self, older_than: float) -> int:
        """Drop terminal tasks that completed more than older_than seconds ago."""
        cutoff = time.time() - older_than
        removed = 0
        with self._lock:
            for agent_id, agent in list(self._agents.items()):
                if not agent.is_terminal():
                    continue
                if agent.completed_at is not None and agent.completed_at < cutoff:
                    del self._agents[agent_id]
                    removed += 1
        if removed:
            logger.debug(f"Cleaned up {removed} subagents")
        return removed

    def clear_all(self) -> None:
        """Forget every task. Running tasks are not stopped and no longer counted."""
        with self._lock:
            self._agents.clear()
            self._active_ids.clear()

    def set_max_concurrent(self, n: int) -> None:
        with self._lock:
            self._max_concurrent = max(1, int(n))

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._active_ids)

    def stats(self) -> Dict[str, Any]:
        agents = self.list()
        by_status = {s: 0 for s in SubagentStatus}
        for a in agents:
            by_status[a.get_status()] += 1
        with self._lock:
            finished = self._total_completed + self._total_failed
            stats = {
                "total_agents": len(self._agents),
                "active_agents": len(self._active_ids),
                "total_spawned": self._total_spawned,
                "total_completed": self._total_completed,
                "total_failed": self._total_failed,
                "max_concurrent": self._max_concurrent,
                "success_rate": (self._total_completed / finished * 100) if finished else 0.0,
            }
        for status, count in by_status.items():
            stats[f"{status.value}_agents"] = count
        return stats


def spawn_default(manager: SubagentManager, agent_type: SubagentType, prompt: str,
                  work_dir: str = ".") -> Subagent:
    """Spawn with the role's default limits."""
    config = default_config(agent_type, prompt)
    config.work_dir = work_dir
    return manager.spawn(config)
