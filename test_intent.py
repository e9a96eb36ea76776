"""Intent JSON extraction, validation and the detector's question fallback."""

import pytest

from agent.intent import (
    DETECT_SYSTEM,
    IntentDetector,
    IntentKind,
    IntentParseError,
    extract_json_object,
    fallback_result,
    parse_intent_response,
)
from conftest import intent_json
from ollama_service import BackendTransportError, Message


def test_extract_plain_object():
    assert extract_json_object('{"a": 1}') == {"a": 1}


def test_extract_from_fenced_block_with_prose():
    text = 'Sure! Here it is:\n```json\n{"intent": "read_file", "parameters": {"file_path": "a.py"}}\n```\nDone.'
    assert extract_json_object(text)["parameters"] == {"file_path": "a.py"}


def test_extract_ignores_braces_inside_strings():
    text = 'prefix {"content": "if (x) { y(); }", "n": 2} suffix {"other": true}'
    assert extract_json_object(text) == {"content": "if (x) { y(); }", "n": 2}


@pytest.mark.parametrize("text", ["", "no json here", '{"a": 1', "[1, 2]", "{'a': 1}"])
def test_extract_rejects(text):
    with pytest.raises(IntentParseError):
        extract_json_object(text)


def test_parse_valid_response():
    result = parse_intent_response(intent_json("execute_command", 0.8, command="ls"))
    assert result.intent is IntentKind.EXECUTE_COMMAND
    assert result.get_str("command") == "ls"
    assert result.confidence == 0.8


def test_parse_missing_parameters_defaults_to_empty():
    result = parse_intent_response('{"intent": "question", "confidence": 1}')
    assert result.parameters == {}


@pytest.mark.parametrize("text", [
    '{"intent": "delete_everything", "parameters": {}, "confidence": 0.5}',
    '{"intent": "read_file", "parameters": "a.py", "confidence": 0.5}',
    '{"intent": "read_file", "parameters": {}, "confidence": 1.5}',
    '{"intent": "read_file", "parameters": {}, "confidence": "high"}',
    '{"intent": "read_file", "parameters": {}, "confidence": true}',
])
def test_parse_rejects_invalid(text):
    with pytest.raises(IntentParseError):
        parse_intent_response(text)


def test_get_str_ignores_non_strings():
    result = parse_intent_response(intent_json("read_file", file_path=12))
    assert result.get_str("file_path", "default") == "default"


def test_fallback_is_question():
    result = fallback_result()
    assert result.intent is IntentKind.QUESTION
    assert result.parameters == {}
    assert result.confidence == 0.0


def test_detector_uses_intent_model_and_system_prompt(router, fake_client):
    fake_client.script(intent_json("read_file", file_path="main.py"))
    result = IntentDetector(router).detect("show main.py", "/work", ["main.py"])

    assert result.intent is IntentKind.READ_FILE
    call = fake_client.calls[0]
    assert call["options"].system_prompt == DETECT_SYSTEM
    assert call["options"].max_tokens == 512
    prompt = call["messages"][0].content
    assert "Working directory: /work" in prompt
    assert "Recent files: main.py" in prompt
    assert "User message: show main.py" in prompt


def test_detector_includes_recent_history(router, fake_client):
    fake_client.script(intent_json("question"))
    history = [Message("user", "earlier question"), Message("assistant", "earlier answer")]
    IntentDetector(router).detect_with_history("and now?", "/work", [], history)
    prompt = fake_client.calls[0]["messages"][0].content
    assert "user: earlier question" in prompt
    assert "assistant: earlier answer" in prompt


@pytest.mark.parametrize("response", [
    "I think you want to read a file",
    '{"intent": "teleport", "parameters": {}, "confidence": 0.9}',
    BackendTransportError("connection refused"),
])
def test_detector_falls_back_to_question(router, fake_client, response):
    fake_client.script(response)
    result = IntentDetector(router).detect("do something", "/work")
    assert result.intent is IntentKind.QUESTION
    assert result.confidence == 0.0


def test_blank_message_skips_backend(router, fake_client):
    result = IntentDetector(router).detect("   ", "/work")
    assert result.intent is IntentKind.QUESTION
    assert fake_client.calls == []
