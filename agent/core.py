"""
Dispatch loop: one user turn in, one assistant turn out.

Order per turn: log the user message, detect the intent, run the handler,
log the assistant message, surface it. The conversation lock is only held
for the log operations themselves.
"""

import logging
import os
import threading
from typing import Callable, List, Optional

from agent.conversation import ConversationLog
from agent.intent import IntentDetector, IntentResult
from cancellation import CancelToken
from differ import Differ, DiffPreviewer
from handlers import Dependencies, HandlerError, HandlerRegistry, build_default_handlers
from modes import OperationMode
from multimodel import ModelRouter
from ollama_service import Message
from tools import ToolRegistry, build_default_registry

logger = logging.getLogger(__name__)

MAX_RECENT_FILES = 10
ERROR_PREFIX = "❌ Erro: "


def format_error(error: BaseException) -> str:
    return f"{ERROR_PREFIX}{error}"


def initial_recent_files(work_dir: str, limit: int = MAX_RECENT_FILES) -> List[str]:
    try:
        names = sorted(os.listdir(work_dir))
    except OSError:
        return []
    files = [n for n in names if not n.startswith(".") and os.path.isfile(os.path.join(work_dir, n))]
    return files[:limit]


class Agent:
    """Owns the conversation log and routes each message to its intent handler."""

    def __init__(
        self,
        router: ModelRouter,
        confirmation,
        mode: OperationMode = OperationMode.INTERACTIVE,
        work_dir: str = ".",
        tools: Optional[ToolRegistry] = None,
        handlers: Optional[HandlerRegistry] = None,
        detector: Optional[IntentDetector] = None,
        web_search=None,
        subagents=None,
        sink: Optional[Callable[[str], None]] = None,
        command_timeout: int = 60,
    ):
        self.router = router
        self.confirmation = confirmation
        self.command_timeout = command_timeout
        self.work_dir = os.path.abspath(work_dir)
        self.tools = tools or build_default_registry(self.work_dir, command_timeout)
        self.handlers = handlers or build_default_handlers()
        self.detector = detector or IntentDetector(router)
        self.web_search = web_search
        self.subagents = subagents
        self.sink = sink
        self.differ = Differ()
        self.previewer = DiffPreviewer()
        self.log = ConversationLog()

        self._mode = mode
        self._recent_files = initial_recent_files(self.work_dir)
        self._state_lock = threading.Lock()
        self._current_cancel: Optional[CancelToken] = None

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    def process_message(self, message: str) -> str:
        """Run one turn. Never raises for handler or backend failures."""
        self.log.append("user", message)
        history = self.log.messages()[:-1]

        cancel = CancelToken()
        with self._state_lock:
            self._current_cancel = cancel
            mode = self._mode
            work_dir = self.work_dir
            tools = self.tools
            recent = list(self._recent_files)

        deps = Dependencies(
            tools=tools,
            router=self.router,
            confirmation=self.confirmation,
            mode=mode,
            work_dir=work_dir,
            history=history,
            recent_files=recent,
            differ=self.differ,
            previewer=self.previewer,
            web_search=self.web_search,
            subagents=self.subagents,
            sink=self.sink,
            cancel=cancel,
            add_recent_file=self.add_recent_file,
        )

        failed = False
        try:
            result = self.detector.detect_with_history(message, work_dir, recent, history, cancel)
            text = self._run_handler(deps, result, message)
        except HandlerError as e:
            failed = True
            text = format_error(e)
        except Exception as e:
            failed = True
            logger.exception("Turn failed")
            text = format_error(e)
        finally:
            cancel.release()
            with self._state_lock:
                self._current_cancel = None

        self.log.append("assistant", text)
        if failed or not deps.streamed:
            self._emit(text)
        return text

    def _run_handler(self, deps: Dependencies, result: IntentResult, message: str) -> str:
        handler = self.handlers.get(result.intent)
        logger.info(f"Dispatching {result.intent.value} to {handler.name or type(handler).__name__}")
        return handler.handle(deps, result, message)

    def _emit(self, text: str) -> None:
        if self.sink is not None:
            self.sink(text if text.endswith("\n") else text + "\n")

    def cancel(self) -> None:
        """Cancel the in-flight turn, if any."""
        with self._state_lock:
            token = self._current_cancel
        if token is not None:
            token.cancel()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    def get_history(self) -> List[Message]:
        return self.log.messages()

    def clear_history(self) -> None:
        self.log.clear()

    def get_mode(self) -> OperationMode:
        with self._state_lock:
            return self._mode

    def set_mode(self, mode: OperationMode) -> None:
        with self._state_lock:
            self._mode = mode
        logger.info(f"Mode set to {mode.value}")

    def get_work_dir(self) -> str:
        with self._state_lock:
            return self.work_dir

    def set_work_dir(self, path: str) -> None:
        """Switch the working directory; tools are rebuilt against it."""
        full = os.path.abspath(path)
        if not os.path.isdir(full):
            raise ValueError(f"not a directory: {path}")
        tools = build_default_registry(full, self.command_timeout)
        with self._state_lock:
            self.work_dir = full
            self.tools = tools
            self._recent_files = initial_recent_files(full)

    def get_recent_files(self) -> List[str]:
        with self._state_lock:
            return list(self._recent_files)

    def add_recent_file(self, path: str) -> None:
        with self._state_lock:
            if path in self._recent_files:
                self._recent_files.remove(path)
            self._recent_files.append(path)
            del self._recent_files[:-MAX_RECENT_FILES]


__all__ = ["Agent", "format_error", "ERROR_PREFIX"]
