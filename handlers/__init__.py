"""
Intent handlers.

Modules:
- base: Handler contract, Dependencies bundle, HandlerRegistry
- file_read, file_write, execute, search, analyze, git, web_search, question:
  one handler per intent
"""

from agent.intent import IntentKind
from handlers.base import (
    BLOCKED_READ_ONLY,
    CANCELED,
    Dependencies,
    DuplicateHandlerError,
    Handler,
    HandlerError,
    HandlerRegistry,
)
from handlers.analyze import AnalyzeHandler
from handlers.execute import ExecuteHandler
from handlers.file_read import FileReadHandler
from handlers.file_write import FileWriteHandler
from handlers.git import GitHandler
from handlers.question import QuestionHandler
from handlers.search import SearchHandler
from handlers.web_search import WebSearchHandler


def build_default_handlers() -> HandlerRegistry:
    """Registry with one handler per intent; Question is also the default."""
    question = QuestionHandler()
    registry = HandlerRegistry(default=question)
    registry.register(IntentKind.READ_FILE, FileReadHandler())
    registry.register(IntentKind.WRITE_FILE, FileWriteHandler())
    registry.register(IntentKind.EXECUTE_COMMAND, ExecuteHandler())
    registry.register(IntentKind.SEARCH_CODE, SearchHandler())
    registry.register(IntentKind.ANALYZE_PROJECT, AnalyzeHandler())
    registry.register(IntentKind.GIT_OPERATION, GitHandler())
    registry.register(IntentKind.WEB_SEARCH, WebSearchHandler())
    registry.register(IntentKind.QUESTION, question)
    return registry


__all__ = [
    "BLOCKED_READ_ONLY",
    "CANCELED",
    "Dependencies",
    "DuplicateHandlerError",
    "Handler",
    "HandlerError",
    "HandlerRegistry",
    "build_default_handlers",
]
