"""
Shared fixtures: a scripted backend client, a router that hands it out,
a recording confirmation gate and a small workspace on disk.
"""

import threading
from typing import Any, Dict, List, Optional

import pytest

from confirmation import Answer
from modes import OperationMode
from multimodel import ModelRouter, single_model_config
from ollama_service import BackendCanceledError


class FakeClient:
    """Stands in for OllamaClient. Responses are consumed in order; an Exception entry is raised."""

    def __init__(self, model: str = "fake-model"):
        self.model = model
        self.responses: List[Any] = []
        self.stream_chunks: List[str] = []
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def get_model(self) -> str:
        return self.model

    def script(self, *responses: Any) -> "FakeClient":
        self.responses.extend(responses)
        return self

    def complete(self, messages, options=None, cancel=None) -> str:
        with self._lock:
            self.calls.append({"kind": "complete", "messages": list(messages), "options": options})
            response = self.responses.pop(0) if self.responses else ""
        if cancel is not None and cancel.cancelled:
            raise BackendCanceledError("request canceled")
        if isinstance(response, Exception):
            raise response
        return response

    def complete_streaming(self, messages, options, on_chunk, cancel=None) -> str:
        with self._lock:
            self.calls.append({"kind": "stream", "messages": list(messages), "options": options})
            chunks = list(self.stream_chunks)
        parts = []
        for chunk in chunks:
            if cancel is not None and cancel.cancelled:
                raise BackendCanceledError("request canceled")
            if chunk:
                on_chunk(chunk)
                parts.append(chunk)
        return "".join(parts)

    def close(self) -> None:
        pass


class FakeConfirmation:
    """Answers every prompt from preset values and records what was asked."""

    def __init__(self, answer: bool = True, dangerous_answer: bool = False,
                 question_label: str = "Executar", raise_error: Optional[Exception] = None):
        self.answer = answer
        self.dangerous_answer = dangerous_answer
        self.question_label = question_label
        self.raise_error = raise_error
        self.calls: List[tuple] = []

    def _check(self):
        if self.raise_error is not None:
            raise self.raise_error

    def confirm(self, action, details=""):
        self.calls.append(("confirm", action))
        self._check()
        return self.answer

    def confirm_with_preview(self, action, preview):
        self.calls.append(("preview", action, preview))
        self._check()
        return self.answer

    def confirm_dangerous_action(self, action, warning=""):
        self.calls.append(("dangerous", action))
        self._check()
        return self.dangerous_answer

    def ask_question(self, question, options, header=""):
        self.calls.append(("question", question))
        self._check()
        return Answer(selected_label=self.question_label)


@pytest.fixture
def fake_client():
    return FakeClient("fake-model")


@pytest.fixture
def router(fake_client):
    return ModelRouter(single_model_config("fake-model"), client_factory=lambda name: fake_client)


@pytest.fixture
def confirmation():
    return FakeConfirmation()


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "main.py").write_text("def main():\n    print('hello')\n")
    (tmp_path / "README.md").write_text("# Demo\n\nA small project.\n")
    src = tmp_path / "src"
    src.mkdir()
    (src / "util.py").write_text("def helper(x):\n    return x * 2\n")
    return tmp_path


@pytest.fixture
def make_agent(router, confirmation, workspace):
    from agent.core import Agent

    def _make(mode: OperationMode = OperationMode.INTERACTIVE, **kwargs):
        output: List[str] = []
        agent = Agent(
            router=router,
            confirmation=kwargs.pop("confirmation", confirmation),
            mode=mode,
            work_dir=str(workspace),
            sink=output.append,
            **kwargs,
        )
        agent.output = output
        return agent

    return _make


def intent_json(intent: str, confidence: float = 0.9, **parameters) -> str:
    import json
    return json.dumps({"intent": intent, "parameters": parameters, "confidence": confidence})
