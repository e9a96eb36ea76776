"""
Ollama service for the coding assistant.
Talks to a local Ollama server's /api/chat endpoint with one-shot and
streaming completions. Every call accepts an optional CancelToken.
"""

import json
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import httpx

from cancellation import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5-coder:7b"
REQUEST_TIMEOUT = 300.0
CHAT_PATH = "/api/chat"


# ============================================================
# Errors
# ============================================================

class OllamaError(Exception):
    """Base class for failures talking to the Ollama server"""
    pass


class BackendStatusError(OllamaError):
    """Server answered with a non-200 status"""

    def __init__(self, code: int, body: str):
        self.code = code
        self.body = body
        super().__init__(f"ollama returned status {code}: {body}")


class BackendTransportError(OllamaError):
    """Connection, timeout or other transport failure"""
    pass


class BackendDecodeError(OllamaError):
    """Response body could not be parsed"""
    pass


class BackendCanceledError(OllamaError):
    """Request aborted through its cancel token"""
    pass


# ============================================================
# Data types
# ============================================================

@dataclass
class Message:
    """A single chat message"""
    role: str  # user, assistant, system
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


MessageLike = Union[Message, Dict[str, Any]]


@dataclass
class GenerationOptions:
    """Per-request generation settings"""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_prompt: Optional[str] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None

    def to_ollama_options(self) -> Dict[str, Any]:
        """Map to the Ollama `options` object; unset values are omitted."""
        opts: Dict[str, Any] = {}
        if self.temperature is not None:
            opts["temperature"] = self.temperature
        if self.max_tokens:
            opts["num_predict"] = self.max_tokens
        if self.top_k:
            opts["top_k"] = self.top_k
        if self.top_p is not None:
            opts["top_p"] = self.top_p
        return opts


def _message_dict(message: MessageLike) -> Dict[str, str]:
    if isinstance(message, Message):
        return message.to_dict()
    return {"role": str(message.get("role", "user")), "content": str(message.get("content", ""))}


class _RecordDecoder:
    """Incrementally splits a body of concatenated JSON records."""

    def __init__(self):
        self._buf = ""
        self._decoder = json.JSONDecoder()

    def feed(self, text: str) -> List[Any]:
        self._buf += text
        records = []
        while True:
            stripped = self._buf.lstrip()
            if not stripped:
                self._buf = ""
                break
            try:
                obj, end = self._decoder.raw_decode(stripped)
            except json.JSONDecodeError:
                # Incomplete record: wait for more text
                self._buf = stripped
                break
            records.append(obj)
            self._buf = stripped[end:]
        return records

    def finish(self) -> None:
        if self._buf.strip():
            raise BackendDecodeError(f"malformed record in response: {self._buf[:200]!r}")


def _record_content(record: Any) -> str:
    """Extract message.content from one response record."""
    if not isinstance(record, dict):
        raise BackendDecodeError(f"unexpected record type: {type(record).__name__}")
    if "error" in record:
        raise BackendStatusError(200, str(record["error"]))
    message = record.get("message") or {}
    if not isinstance(message, dict):
        raise BackendDecodeError("record field 'message' is not an object")
    content = message.get("content", "")
    if not isinstance(content, str):
        raise BackendDecodeError("record field 'message.content' is not a string")
    return content


_END = object()
_CANCELED = object()


# ============================================================
# Client
# ============================================================

class OllamaClient:
    """
    Session-less client for one model on an Ollama server.

    Requests run on a worker thread; the calling thread waits on a queue that a
    cancel token can wake, so cancellation is prompt even while the server
    is still computing a non-streaming answer.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._model = model
        self._model_lock = threading.Lock()
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def get_model(self) -> str:
        with self._model_lock:
            return self._model

    def set_model(self, name: str) -> None:
        with self._model_lock:
            self._model = name

    def close(self) -> None:
        self._http.close()

    def _build_payload(
        self,
        messages: List[MessageLike],
        options: Optional[GenerationOptions],
        stream: bool,
    ) -> Dict[str, Any]:
        msgs: List[Dict[str, str]] = []
        if options is not None and options.system_prompt:
            msgs.append({"role": "system", "content": options.system_prompt})
        msgs.extend(_message_dict(m) for m in messages)
        payload: Dict[str, Any] = {"model": self.get_model(), "messages": msgs, "stream": stream}
        ollama_options = options.to_ollama_options() if options is not None else {}
        if ollama_options:
            payload["options"] = ollama_options
        return payload

    def _stream_records(self, payload: Dict[str, Any], cancel: Optional[CancelToken]) -> Iterator[Any]:
        """Yield decoded records from POST /api/chat."""
        if cancel is not None and cancel.cancelled:
            raise BackendCanceledError("request canceled before it was sent")

        q: "queue.Queue[Any]" = queue.Queue()
        holder: Dict[str, httpx.Response] = {}

        def _worker():
            try:
                with self._http.stream("POST", CHAT_PATH, json=payload) as response:
                    holder["response"] = response
                    if response.status_code != 200:
                        body = response.read().decode("utf-8", errors="replace")
                        q.put(BackendStatusError(response.status_code, body))
                        return
                    decoder = _RecordDecoder()
                    for text in response.iter_text():
                        for record in decoder.feed(text):
                            q.put(record)
                    decoder.finish()
            except OllamaError as e:
                q.put(e)
            except httpx.HTTPError as e:
                q.put(BackendTransportError(f"request to {self.base_url}{CHAT_PATH} failed: {e}"))
            except Exception as e:
                # Stream closed from under us after a cancel lands here too
                q.put(BackendTransportError(f"request to {self.base_url}{CHAT_PATH} aborted: {e}"))
            finally:
                q.put(_END)

        def _wake():
            q.put(_CANCELED)

        if cancel is not None:
            cancel.add_callback(_wake)
        worker = threading.Thread(target=_worker, daemon=True, name="ollama-request")
        worker.start()
        try:
            while True:
                item = q.get()
                if item is _CANCELED or (cancel is not None and cancel.cancelled):
                    raise BackendCanceledError("request canceled")
                if item is _END:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if cancel is not None:
                cancel.remove_callback(_wake)
            response = holder.get("response")
            if worker.is_alive() and response is not None:
                try:
                    response.close()
                except Exception as e:
                    logger.debug(f"Closing abandoned response failed: {e}")

    def complete(
        self,
        messages: List[MessageLike],
        options: Optional[GenerationOptions] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """One non-streaming chat completion. Returns the assistant text."""
        payload = self._build_payload(messages, options, stream=False)
        logger.debug(f"Ollama complete: model={payload['model']} messages={len(payload['messages'])}")
        parts: List[str] = []
        got_record = False
        for record in self._stream_records(payload, cancel):
            got_record = True
            parts.append(_record_content(record))
            if record.get("done"):
                break
        if not got_record:
            raise BackendDecodeError("empty response body")
        return "".join(parts)

    def complete_streaming(
        self,
        messages: List[MessageLike],
        options: Optional[GenerationOptions],
        on_chunk: Callable[[str], None],
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Streaming chat completion. Each non-empty content fragment is passed to
        on_chunk, then the full accumulated text is returned.

        on_chunk is called on the caller's thread between reads. It must not
        call back into this client and must not take the conversation lock;
        write to a thread-safe sink only.
        """
        payload = self._build_payload(messages, options, stream=True)
        logger.debug(f"Ollama stream: model={payload['model']} messages={len(payload['messages'])}")
        parts: List[str] = []
        for record in self._stream_records(payload, cancel):
            fragment = _record_content(record)
            if fragment:
                on_chunk(fragment)
                parts.append(fragment)
            if record.get("done"):
                break
        return "".join(parts)

    def ask(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """Single user prompt, non-streaming."""
        return self.complete([Message(role="user", content=prompt)], options, cancel=cancel)
