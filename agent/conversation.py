"""Append-only conversation log shared between turns of one dispatch loop."""

import threading
from typing import List

from ollama_service import Message


class ConversationLog:
    """Messages in insertion order. Reads return copies; the lock is never held across I/O."""

    def __init__(self):
        self._messages: List[Message] = []
        self._lock = threading.Lock()

    def append(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        with self._lock:
            self._messages.append(message)
        return Message(role=role, content=content)

    def messages(self) -> List[Message]:
        with self._lock:
            return [Message(role=m.role, content=m.content) for m in self._messages]

    def last(self, n: int) -> List[Message]:
        with self._lock:
            tail = self._messages[-n:] if n > 0 else []
            return [Message(role=m.role, content=m.content) for m in tail]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
