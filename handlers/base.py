"""
Handler contract, per-turn dependency bundle and the intent -> handler registry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from agent.intent import IntentKind, IntentResult
from cancellation import CancelToken
from confirmation import ConfirmationInputError
from differ import Differ, DiffPreviewer
from modes import OperationMode
from multimodel import ModelRouter
from ollama_service import Message
from tools import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

BLOCKED_READ_ONLY = (
    "❌ Operação bloqueada: modo somente leitura (read-only)\n"
    "Para permitir modificações, use:\n"
    "  --mode interactive  (pede confirmação)\n"
    "  --mode autonomous   (executa automaticamente)"
)
CANCELED = "✗ Operação cancelada"


class HandlerError(Exception):
    """User-facing handler failure; the dispatch loop prints it as an error."""
    pass


class DuplicateHandlerError(HandlerError):
    pass


@dataclass
class Dependencies:
    """What a handler may use during one turn. Built fresh by the dispatch loop."""
    tools: ToolRegistry
    router: ModelRouter
    confirmation: Any  # ConfirmationManager or a test double
    mode: OperationMode
    work_dir: str
    history: List[Message] = field(default_factory=list)
    recent_files: List[str] = field(default_factory=list)
    differ: Optional[Differ] = None
    previewer: Optional[DiffPreviewer] = None
    web_search: Any = None  # WebSearchOrchestrator
    subagents: Any = None  # SubagentManager
    sink: Optional[Callable[[str], None]] = None
    cancel: Optional[CancelToken] = None
    add_recent_file: Optional[Callable[[str], None]] = None
    streamed: bool = False

    def emit(self, text: str) -> None:
        if self.sink is not None:
            self.sink(text)

    def remember_file(self, path: str) -> None:
        if self.add_recent_file is not None:
            self.add_recent_file(path)


class Handler(ABC):
    name: str = ""

    @abstractmethod
    def handle(self, deps: Dependencies, result: IntentResult, user_message: str) -> str:
        """Return the assistant text, or raise HandlerError."""


def ask(confirm: Callable[..., bool], *args: Any) -> bool:
    """Run a confirmation prompt; a broken input stream counts as a decline."""
    try:
        return bool(confirm(*args))
    except ConfirmationInputError as e:
        logger.warning(f"Confirmation input failed: {e}")
        return False


def tool_failure(result: ToolResult) -> HandlerError:
    return HandlerError(result.error or "falha desconhecida")


class HandlerRegistry:
    """IntentKind -> Handler. Unregistered intents go to the default handler."""

    def __init__(self, default: Optional[Handler] = None):
        self._handlers: Dict[IntentKind, Handler] = {}
        self._default = default
        self._lock = threading.RLock()

    def register(self, intent: IntentKind, handler: Handler) -> None:
        with self._lock:
            if intent in self._handlers:
                raise DuplicateHandlerError(f"handler for {intent.value} already registered")
            self._handlers[intent] = handler

    def set_default(self, handler: Handler) -> None:
        with self._lock:
            self._default = handler

    def get(self, intent: IntentKind) -> Handler:
        with self._lock:
            handler = self._handlers.get(intent, self._default)
        if handler is None:
            raise HandlerError(f"no handler for intent {intent.value}")
        return handler

    def has(self, intent: IntentKind) -> bool:
        with self._lock:
            return intent in self._handlers

    def list(self) -> List[IntentKind]:
        with self._lock:
            return sorted(self._handlers, key=lambda k: k.value)


def llm_complete(deps: Dependencies, task: Any, prompt: str, system_prompt: Optional[str] = None) -> str:
    """One non-streaming backend call with the model configured for task."""
    spec = deps.router.get_model_spec(task)
    client = deps.router.get_client(task)
    return client.complete(
        [Message(role="user", content=prompt)],
        spec.options(system_prompt=system_prompt),
        cancel=deps.cancel,
    )
