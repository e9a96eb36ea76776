"""
Agent package - the per-turn dispatch pipeline.

- intent: IntentKind, IntentResult and the backend-driven IntentDetector
- conversation: ConversationLog, the append-only message log
- core: Agent, the dispatch loop (import from agent.core; it depends on handlers)
"""

from .intent import (
    IntentDetector,
    IntentKind,
    IntentParseError,
    IntentResult,
    extract_json_object,
    parse_intent_response,
)
from .conversation import ConversationLog

__all__ = [
    "ConversationLog",
    "IntentDetector",
    "IntentKind",
    "IntentParseError",
    "IntentResult",
    "extract_json_object",
    "parse_intent_response",
]
