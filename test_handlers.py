"""Intent handlers: mode gates, confirmation paths, tool calls and output formatting."""

import pytest

from agent.intent import IntentKind, IntentResult
from backend import LocalBackend
from confirmation import ConfirmationInputError
from conftest import FakeConfirmation
from differ import Differ, DiffPreviewer
from handlers import (
    BLOCKED_READ_ONLY,
    CANCELED,
    Dependencies,
    DuplicateHandlerError,
    HandlerError,
    build_default_handlers,
)
from handlers.execute import ExecuteHandler
from handlers.file_read import FileReadHandler, content_preview, wants_analysis
from handlers.file_write import FileWriteHandler
from handlers.git import GitHandler, format_git_output, needs_interaction
from handlers.question import QuestionHandler
from handlers.search import SearchHandler, extract_query, format_matches
from handlers.analyze import AnalyzeHandler
from handlers.web_search import WebSearchHandler, format_results
from handlers.web_search import extract_query as extract_web_query
from modes import OperationMode
from ollama_service import BackendStatusError, Message
from tools import Tool, ToolRegistry, ToolResult, build_default_registry
from websearch import SearchResult, WebSearchOrchestrator


class RecordingTool(Tool):
    def __init__(self, name, result=None):
        super().__init__(LocalBackend("."))
        self.name = name
        self.result = result or ToolResult.ok("ok", output="")
        self.calls = []

    def _run(self, params, cancel):
        self.calls.append(dict(params))
        return self.result


@pytest.fixture
def make_deps(router, workspace):
    def _make(mode=OperationMode.INTERACTIVE, confirmation=None, tools=None, **kwargs):
        recent = []
        deps = Dependencies(
            tools=tools or build_default_registry(str(workspace), command_timeout=10),
            router=router,
            confirmation=confirmation or FakeConfirmation(),
            mode=mode,
            work_dir=str(workspace),
            differ=Differ(),
            previewer=DiffPreviewer(),
            add_recent_file=recent.append,
            **kwargs,
        )
        deps.recent = recent
        return deps
    return _make


def intent(kind, **params):
    return IntentResult(intent=kind, parameters=params, confidence=0.9)


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

def test_default_handlers_cover_every_intent():
    registry = build_default_handlers()
    assert set(registry.list()) == set(IntentKind)
    assert isinstance(registry.get(IntentKind.QUESTION), QuestionHandler)


def test_duplicate_handler_rejected():
    registry = build_default_handlers()
    with pytest.raises(DuplicateHandlerError):
        registry.register(IntentKind.READ_FILE, FileReadHandler())


# ------------------------------------------------------------------
# WriteFile
# ------------------------------------------------------------------

def test_read_only_blocks_write(make_deps, workspace):
    deps = make_deps(mode=OperationMode.READ_ONLY)
    out = FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE, file_path="test.txt", content="hi"), "")
    assert out == BLOCKED_READ_ONLY
    assert not (workspace / "test.txt").exists()
    assert deps.confirmation.calls == []


def test_interactive_write_confirmed(make_deps, workspace):
    deps = make_deps()
    out = FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE, file_path="test.txt", content="hi"), "")
    assert out.startswith("✓ Arquivo criado: test.txt")
    assert (workspace / "test.txt").read_text() == "hi"
    assert deps.confirmation.calls[0][0] == "preview"
    assert deps.recent == ["test.txt"]


def test_interactive_write_declined(make_deps, workspace):
    deps = make_deps(confirmation=FakeConfirmation(answer=False))
    out = FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE, file_path="test.txt", content="hi"), "")
    assert out == CANCELED
    assert not (workspace / "test.txt").exists()


def test_broken_confirmation_input_counts_as_decline(make_deps, workspace):
    deps = make_deps(confirmation=FakeConfirmation(raise_error=ConfirmationInputError("input stream closed")))
    out = FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE, file_path="t.txt", content="x"), "")
    assert out == CANCELED
    assert not (workspace / "t.txt").exists()


def test_overwrite_preview_is_a_diff(make_deps, workspace):
    deps = make_deps()
    out = FileWriteHandler().handle(
        deps, intent(IntentKind.WRITE_FILE, file_path="main.py", content="def main():\n    pass\n"), "",
    )
    preview = deps.confirmation.calls[0][2]
    assert "MODIFICADA" in preview
    assert "```diff" in out


def test_autonomous_write_skips_confirmation(make_deps, workspace):
    deps = make_deps(mode=OperationMode.AUTONOMOUS)
    FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE, file_path="a.txt", content="x"), "")
    assert (workspace / "a.txt").read_text() == "x"
    assert deps.confirmation.calls == []


def test_missing_parameters_recovered_from_backend(make_deps, fake_client, workspace):
    fake_client.script('{"file_path": "hello.py", "content": "print(1)\\n"}')
    deps = make_deps(mode=OperationMode.AUTONOMOUS)
    FileWriteHandler().handle(deps, intent(IntentKind.WRITE_FILE), "create hello.py that prints 1")
    assert (workspace / "hello.py").read_text() == "print(1)\n"


def test_unparseable_recovery_is_an_error(make_deps, fake_client):
    fake_client.script("sorry, no idea")
    with pytest.raises(HandlerError):
        FileWriteHandler().handle(make_deps(mode=OperationMode.AUTONOMOUS), intent(IntentKind.WRITE_FILE), "write it")


def test_replace_mode(make_deps, workspace):
    deps = make_deps()
    out = FileWriteHandler().handle(deps, intent(
        IntentKind.WRITE_FILE, file_path="main.py", mode="replace", old_text="hello", new_text="bye",
    ), "")
    assert "1 substituição" in out
    assert "bye" in (workspace / "main.py").read_text()


def test_replace_requires_texts(make_deps):
    with pytest.raises(HandlerError):
        FileWriteHandler().handle(make_deps(), intent(IntentKind.WRITE_FILE, file_path="main.py", mode="replace"), "")


def test_invalid_write_mode(make_deps):
    with pytest.raises(HandlerError):
        FileWriteHandler().handle(make_deps(), intent(IntentKind.WRITE_FILE, file_path="a", content="x", mode="zap"), "")


# ------------------------------------------------------------------
# ExecuteCommand
# ------------------------------------------------------------------

def test_dangerous_command_needs_strict_confirmation(make_deps, workspace):
    confirmation = FakeConfirmation(answer=True, dangerous_answer=False)
    deps = make_deps(confirmation=confirmation)
    out = ExecuteHandler().handle(deps, intent(IntentKind.EXECUTE_COMMAND, command="rm -rf build && touch ran.txt"), "")
    assert out == CANCELED
    assert confirmation.calls[0][0] == "dangerous"
    assert not (workspace / "ran.txt").exists()


def test_ordinary_command_confirmed_and_run(make_deps):
    deps = make_deps()
    out = ExecuteHandler().handle(deps, intent(IntentKind.EXECUTE_COMMAND, command="echo hello"), "")
    assert deps.confirmation.calls[0][0] == "confirm"
    assert "$ echo hello" in out
    assert "hello" in out
    assert "✓ Comando executado com sucesso" in out


def test_failed_command_reports_exit_code(make_deps):
    deps = make_deps(mode=OperationMode.AUTONOMOUS)
    out = ExecuteHandler().handle(deps, intent(IntentKind.EXECUTE_COMMAND, command="exit 4"), "")
    assert "❌ Comando falhou (exit code 4)" in out


def test_execute_blocked_in_read_only(make_deps):
    out = ExecuteHandler().handle(make_deps(mode=OperationMode.READ_ONLY),
                                  intent(IntentKind.EXECUTE_COMMAND, command="ls"), "")
    assert out == BLOCKED_READ_ONLY


def test_execute_without_command(make_deps):
    with pytest.raises(HandlerError):
        ExecuteHandler().handle(make_deps(), intent(IntentKind.EXECUTE_COMMAND), "")


# ------------------------------------------------------------------
# ReadFile
# ------------------------------------------------------------------

def test_read_file_preview(make_deps):
    deps = make_deps(mode=OperationMode.READ_ONLY)
    out = FileReadHandler().handle(deps, intent(IntentKind.READ_FILE, file_path="main.py"), "show main.py")
    assert "   1 | def main():" in out
    assert "Total: 2 linhas" in out
    assert deps.recent == ["main.py"]


def test_read_file_analysis(make_deps, fake_client):
    fake_client.script("It prints hello.")
    out = FileReadHandler().handle(make_deps(), intent(IntentKind.READ_FILE, file_path="main.py"), "explain main.py")
    assert "📝 Análise do arquivo:" in out
    assert "It prints hello." in out


def test_read_file_analysis_falls_back_to_preview(make_deps, fake_client):
    fake_client.script(BackendStatusError(500, "boom"))
    out = FileReadHandler().handle(make_deps(), intent(IntentKind.READ_FILE, file_path="main.py"), "explain main.py")
    assert "📄 Conteúdo do arquivo:" in out


def test_read_missing_file_is_error(make_deps):
    with pytest.raises(HandlerError, match="File not found"):
        FileReadHandler().handle(make_deps(), intent(IntentKind.READ_FILE, file_path="nope.py"), "")


def test_content_preview_truncates():
    text = content_preview("\n".join(f"l{i}" for i in range(30)))
    assert "... e mais 10 linhas" in text
    assert "Total: 30 linhas" in text


def test_wants_analysis_keywords():
    assert wants_analysis("Explique o arquivo main.go")
    assert wants_analysis("what does this do")
    assert not wants_analysis("mostra o arquivo")


# ------------------------------------------------------------------
# SearchCode / AnalyzeProject
# ------------------------------------------------------------------

@pytest.mark.parametrize("message,expected", [
    ("busca a função process_message", "process_message"),
    ("procure por database connection", "database connection"),
    ("find 'TODO'", "todo"),
    ("x", "x"),
])
def test_search_query_extraction(message, expected):
    assert extract_query(message) == expected


def test_format_matches():
    matches = [{"file": "a.py", "line": i, "content": "x" * 150} for i in range(25)]
    text = format_matches("x", "25 matches", matches, 25)
    assert text.count("📄 a.py:") == 20
    assert "... e mais 5 resultados" in text
    assert "Total: 25 matches encontrados" in text
    assert "x" * 100 + "..." in text


def test_format_no_matches_gives_hint():
    assert "💡 Dica" in format_matches("q", "0 matches", [], 0)


def test_search_handler_passes_parameters(make_deps):
    tool = RecordingTool("code_searcher", ToolResult.ok("0 matches", matches=[], count=0))
    registry = ToolRegistry()
    registry.register(tool)
    SearchHandler().handle(make_deps(tools=registry), intent(IntentKind.SEARCH_CODE, file_pattern="*.py"),
                           "search for helper")
    assert tool.calls == [{"query": "helper", "pattern": "helper", "file_pattern": "*.py"}]


def test_analyze_project_tree(make_deps):
    out = AnalyzeHandler().handle(make_deps(), intent(IntentKind.ANALYZE_PROJECT), "")
    assert out.startswith("📂 Estrutura de Diretórios:")
    assert "├── src/" in out


# ------------------------------------------------------------------
# GitOperation
# ------------------------------------------------------------------

def git_registry(output=""):
    tool = RecordingTool("git_operations", ToolResult.ok(output, output=output, exit_code=0))
    registry = ToolRegistry()
    registry.register(tool)
    return registry, tool


def test_git_commit_blocked_in_read_only(make_deps):
    registry, tool = git_registry()
    out = GitHandler().handle(make_deps(mode=OperationMode.READ_ONLY, tools=registry),
                              intent(IntentKind.GIT_OPERATION, operation="commit", message="m"), "")
    assert out == BLOCKED_READ_ONLY
    assert tool.calls == []


def test_git_status_allowed_in_read_only(make_deps):
    registry, tool = git_registry("## main\n M a.py")
    out = GitHandler().handle(make_deps(mode=OperationMode.READ_ONLY, tools=registry),
                              intent(IntentKind.GIT_OPERATION, operation="status"), "")
    assert "📊 Status do repositório:" in out
    assert tool.calls == [{"operation": "status"}]


def test_git_commit_confirmed_passes_parameters(make_deps):
    registry, tool = git_registry()
    deps = make_deps(tools=registry)
    GitHandler().handle(deps, intent(IntentKind.GIT_OPERATION, operation="commit", message="fix"), "")
    assert deps.confirmation.calls[0][0] == "confirm"
    assert tool.calls == [{"operation": "commit", "message": "fix"}]


def test_git_commit_declined(make_deps):
    registry, tool = git_registry()
    out = GitHandler().handle(make_deps(tools=registry, confirmation=FakeConfirmation(answer=False)),
                              intent(IntentKind.GIT_OPERATION, operation="add"), "")
    assert out == CANCELED
    assert tool.calls == []


def test_history_rewriting_detection():
    assert needs_interaction("reset --hard")
    assert needs_interaction("rebase main")
    assert not needs_interaction("commit")


def test_format_git_output_empty_status():
    assert "✓ Nada a commitar" in format_git_output("", "status", "")
    diff = format_git_output("", "diff", "\n".join(f"+{i}" for i in range(60)))
    assert "```diff" in diff
    assert "... e mais 10 linhas" in diff


# ------------------------------------------------------------------
# WebSearch
# ------------------------------------------------------------------

def fake_orchestrator(results):
    return WebSearchOrchestrator(search_fn=lambda q, n: results)


RAW = [
    {"title": "Go 1.22", "href": "https://go.dev/doc/go1.22", "body": "Release notes."},
    {"title": "Blog", "href": "https://go.dev/blog", "body": "News."},
    {"title": "Wiki", "href": "https://example.org/go", "body": "Overview."},
    {"title": "Extra", "href": "https://example.org/x", "body": "More."},
]


def test_web_search_summarizes_with_sources(make_deps, fake_client):
    fake_client.script("Go 1.22 adds range over ints.")
    deps = make_deps(web_search=fake_orchestrator(RAW))
    out = WebSearchHandler().handle(deps, intent(IntentKind.WEB_SEARCH, query="go 1.22"), "")
    assert out.startswith("Go 1.22 adds range over ints.")
    assert "📚 **Fontes:**" in out
    assert "https://go.dev/blog" in out
    assert "https://example.org/x" not in out


def test_web_search_backend_failure_returns_raw_results(make_deps, fake_client):
    fake_client.script(BackendStatusError(500, "down"))
    deps = make_deps(web_search=fake_orchestrator(RAW))
    out = WebSearchHandler().handle(deps, intent(IntentKind.WEB_SEARCH, query="go"), "")
    assert out.startswith("🔍 Resultados da busca por: go")
    assert "1. **Go 1.22**" in out


def test_web_search_disabled(make_deps):
    with pytest.raises(HandlerError, match="desabilitada"):
        WebSearchHandler().handle(make_deps(), intent(IntentKind.WEB_SEARCH, query="x"), "")


def test_web_query_extraction():
    assert extract_web_query("pesquisar sobre python 3.12") == "python 3.12"
    assert extract_web_query("hello") == ""
    assert "Nenhum resultado" in format_results("q", [])
    assert "🔗 https://a" in format_results("q", [SearchResult("A", "https://a", "s")])


# ------------------------------------------------------------------
# Question
# ------------------------------------------------------------------

def test_question_streams_fragments(make_deps, fake_client):
    fake_client.stream_chunks = ["Hello", "", " ", "World"]
    emitted = []
    deps = make_deps(sink=emitted.append, history=[Message("user", "hi"), Message("assistant", "hey")])
    out = QuestionHandler().handle(deps, intent(IntentKind.QUESTION), "greet me")

    assert out == "Hello World"
    assert emitted == ["Hello", " ", "World", "\n"]
    assert deps.streamed is True
    messages = fake_client.calls[0]["messages"]
    assert messages[0].role == "system"
    assert [m.content for m in messages[1:]] == ["hi", "hey", "greet me"]


def test_question_backend_error(make_deps, fake_client):
    class Broken:
        def complete_streaming(self, *args, **kwargs):
            raise BackendStatusError(500, "boom")

    deps = make_deps()
    deps.router._clients["fake-model"] = Broken()
    with pytest.raises(HandlerError, match="boom"):
        QuestionHandler().handle(deps, intent(IntentKind.QUESTION), "hi")
