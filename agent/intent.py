"""
Intent detection for user messages.
Classifies a message into one of a closed set of intents, with parameters,
using the router's intent model. Any failure degrades to a plain question.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from cancellation import CancelToken
from multimodel import ModelRouter, TaskType
from ollama_service import Message

logger = logging.getLogger(__name__)


class IntentKind(str, Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    EXECUTE_COMMAND = "execute_command"
    SEARCH_CODE = "search_code"
    ANALYZE_PROJECT = "analyze_project"
    GIT_OPERATION = "git_operation"
    WEB_SEARCH = "web_search"
    QUESTION = "question"

    def __str__(self) -> str:
        return self.value


@dataclass
class IntentResult:
    intent: IntentKind
    parameters: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0

    def get_str(self, key: str, default: str = "") -> str:
        """String parameter, or default when absent or not a string."""
        value = self.parameters.get(key)
        return value if isinstance(value, str) else default


class IntentParseError(ValueError):
    pass


DETECT_SYSTEM = """You classify requests for a local coding assistant. Return ONLY valid JSON:
{"intent": "<intent>", "parameters": {...}, "confidence": <0.0-1.0>}

Intents and parameters:
- read_file: {"file_path": "..."}  (read, show, open or explain a file)
- write_file: {"file_path": "...", "content": "...", "mode": "create"|"append"|"replace", "old_text": "...", "new_text": "..."}
- execute_command: {"command": "..."}  (run a shell command)
- search_code: {"query": "...", "file_pattern": "..."}  (find text in the code)
- analyze_project: {}  (describe the project structure)
- git_operation: {"operation": "status"|"diff"|"log"|"add"|"commit"|"branch", "message": "...", "files": [...], "file": "...", "action": "...", "name": "..."}
- web_search: {"query": "..."}  (needs information from the internet)
- question: {}  (anything else: explanations, conversation, general help)

Examples:
- "leia o arquivo main.go" -> {"intent": "read_file", "parameters": {"file_path": "main.go"}, "confidence": 0.95}
- "run the tests" -> {"intent": "execute_command", "parameters": {"command": "go test ./..."}, "confidence": 0.8}
- "create hello.txt with 'hi'" -> {"intent": "write_file", "parameters": {"file_path": "hello.txt", "content": "hi", "mode": "create"}, "confidence": 0.9}
- "what is a goroutine?" -> {"intent": "question", "parameters": {}, "confidence": 0.9}

When uncertain, use "question". Return ONLY the JSON object, no explanation."""

_HISTORY_LIMIT = 6
_HISTORY_CHARS = 300


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first JSON object in text, tolerating code fences and chatter."""
    text = (text or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    brace_start = text.find("{")
    if brace_start < 0:
        raise IntentParseError("no JSON object in response")
    depth, end = 0, -1
    in_string, escaped = False, False
    for i in range(brace_start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                end = i + 1
                break
    if end < 0:
        raise IntentParseError("unbalanced JSON object in response")
    try:
        obj = json.loads(text[brace_start:end])
    except json.JSONDecodeError as e:
        raise IntentParseError(f"invalid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise IntentParseError("response is not a JSON object")
    return obj


def parse_intent_response(text: str) -> IntentResult:
    """Validate a detector response. Raises IntentParseError on any violation."""
    obj = extract_json_object(text)
    raw_intent = obj.get("intent")
    try:
        intent = IntentKind(str(raw_intent).strip().lower())
    except ValueError:
        raise IntentParseError(f"unknown intent: {raw_intent!r}")

    params = obj.get("parameters")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise IntentParseError("parameters must be an object")

    confidence = obj.get("confidence", 0.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise IntentParseError(f"confidence must be a number: {confidence!r}")
    if not 0.0 <= float(confidence) <= 1.0:
        raise IntentParseError(f"confidence out of range: {confidence}")
    return IntentResult(intent=intent, parameters=params, confidence=float(confidence))


def fallback_result() -> IntentResult:
    return IntentResult(intent=IntentKind.QUESTION, parameters={}, confidence=0.0)


class IntentDetector:
    """Calls the intent-class model and validates its JSON answer."""

    def __init__(self, router: ModelRouter):
        self.router = router

    def _build_prompt(self, message: str, work_dir: str, recent_files: Sequence[str],
                      history: Sequence[Message]) -> str:
        parts = [f"Working directory: {work_dir}"]
        if recent_files:
            parts.append("Recent files: " + ", ".join(recent_files))
        if history:
            parts.append("Recent conversation:")
            for msg in list(history)[-_HISTORY_LIMIT:]:
                content = msg.content
                if len(content) > _HISTORY_CHARS:
                    content = content[:_HISTORY_CHARS] + "..."
                parts.append(f"{msg.role}: {content}")
        parts.append(f"\nUser message: {message}")
        return "\n".join(parts)

    def detect(self, message: str, work_dir: str, recent_files: Optional[Sequence[str]] = None,
               cancel: Optional[CancelToken] = None) -> IntentResult:
        return self.detect_with_history(message, work_dir, recent_files, [], cancel)

    def detect_with_history(
        self,
        message: str,
        work_dir: str,
        recent_files: Optional[Sequence[str]] = None,
        history: Optional[List[Message]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> IntentResult:
        """Never raises for backend or parse failures; those yield a question intent."""
        if not (message or "").strip():
            return fallback_result()
        spec = self.router.get_model_spec(TaskType.INTENT)
        prompt = self._build_prompt(message, work_dir, recent_files or [], history or [])
        try:
            client = self.router.get_client(TaskType.INTENT)
            text = client.complete(
                [Message(role="user", content=prompt)],
                spec.options(system_prompt=DETECT_SYSTEM),
                cancel=cancel,
            )
            result = parse_intent_response(text)
        except Exception as e:
            logger.warning(f"Intent detection failed ({e}), treating as question")
            return fallback_result()
        logger.info(f"Intent: {result.intent.value} ({result.confidence:.2f}) for: {message[:80]}")
        return result
