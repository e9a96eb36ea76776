"""Tool registry and the six built-in tools against a real temporary workspace."""

import os
import shutil
import subprocess

import pytest

from cancellation import CancelToken
from tools import (
    DuplicateToolError,
    FileReader,
    ToolNotFoundError,
    ToolResult,
    build_default_registry,
    is_dangerous,
    is_mutating,
)
from backend import LocalBackend

TOOL_NAMES = ["code_searcher", "command_executor", "file_reader", "file_writer", "git_operations", "project_analyzer"]


@pytest.fixture
def registry(workspace):
    return build_default_registry(str(workspace), command_timeout=10)


def test_default_registry_lists_tools(registry):
    assert registry.list() == TOOL_NAMES
    assert len(registry) == 6
    assert registry.has("file_reader")
    assert not registry.has("web_fetch")


def test_duplicate_and_missing_tools(registry, workspace):
    with pytest.raises(DuplicateToolError):
        registry.register(FileReader(LocalBackend(str(workspace))))
    with pytest.raises(ToolNotFoundError) as exc:
        registry.get("nope")
    assert str(exc.value) == "tool nope not found"


def test_confirmation_flags(registry):
    needs = {t.name for t in registry.tools() if t.requires_confirmation()}
    assert needs == {"file_writer", "command_executor", "git_operations"}


@pytest.mark.parametrize("name", TOOL_NAMES)
@pytest.mark.parametrize("params", [None, {}, {"file_path": 42, "command": ["ls"], "query": 1, "operation": None}])
def test_bad_params_fail_without_raising(registry, name, params):
    if name == "project_analyzer" and params is None:
        # every parameter is optional
        pytest.skip("no required parameters")
    if name == "project_analyzer":
        params = {"type": 7}
    result = registry.execute(name, params)
    assert isinstance(result, ToolResult)
    assert result.success is False
    assert result.error


def test_non_mapping_params(registry):
    result = registry.execute("file_reader", ["main.py"])
    assert not result.success
    assert "mapping" in result.error


def test_success_has_no_error(registry):
    result = registry.execute("file_reader", {"file_path": "main.py"})
    assert result.success and result.error == ""


# ------------------------------------------------------------------
# file_reader / file_writer
# ------------------------------------------------------------------

def test_read_text_file(registry):
    result = registry.execute("file_reader", {"file_path": "src/util.py"})
    assert result.data["type"] == "text"
    assert result.data["lines"] == 2
    assert "def helper" in result.data["content"]
    assert result.message.startswith("Arquivo lido: src/util.py (2 linhas")


def test_read_image_file(registry, workspace):
    (workspace / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    result = registry.execute("file_reader", {"file_path": "logo.png"})
    assert result.success
    assert result.data["type"] == "image"
    assert result.data["mime_type"] == "image/png"
    assert result.data["base64"]


def test_read_missing_and_directory(registry):
    assert registry.execute("file_reader", {"file_path": "nope.txt"}).error == "File not found: nope.txt"
    assert registry.execute("file_reader", {"file_path": "src"}).error == "Not a file: src"


def test_paths_cannot_escape_workspace(registry):
    result = registry.execute("file_reader", {"file_path": "../../etc/passwd"})
    assert not result.success
    result = registry.execute("file_writer", {"file_path": "/tmp/outside.txt", "content": "x"})
    assert not result.success


def test_create_then_overwrite(registry, workspace):
    created = registry.execute("file_writer", {"file_path": "new/dir/a.txt", "content": "one\n"})
    assert created.success and created.data["created"] is True
    assert created.data["path"] == "new/dir/a.txt"
    assert created.data["mode"] == "create"
    assert created.data["size"] == 4
    assert (workspace / "new/dir/a.txt").read_text() == "one\n"

    updated = registry.execute("file_writer", {"file_path": "new/dir/a.txt", "content": "two\n"})
    assert updated.data["created"] is False
    assert "-one" in updated.data["diff"] and "+two" in updated.data["diff"]


def test_append(registry, workspace):
    appended = registry.execute("file_writer", {"file_path": "README.md", "content": "more\n", "mode": "append"})
    assert appended.data["path"] == "README.md"
    assert (workspace / "README.md").read_text().endswith("A small project.\nmore\n")


def test_replace(registry, workspace):
    result = registry.execute("file_writer", {
        "file_path": "main.py", "mode": "replace", "old_text": "hello", "new_text": "bye",
    })
    assert result.success and result.data["replacements"] == 1
    assert result.data["path"] == "main.py"
    assert result.data["mode"] == "replace"
    assert "print('bye')" in (workspace / "main.py").read_text()

    missing = registry.execute("file_writer", {
        "file_path": "main.py", "mode": "replace", "old_text": "absent", "new_text": "x",
    })
    assert not missing.success and "old_text not found" in missing.error


def test_writer_rejects_unknown_mode(registry):
    result = registry.execute("file_writer", {"file_path": "a.txt", "content": "x", "mode": "truncate"})
    assert not result.success and "invalid mode" in result.error


# ------------------------------------------------------------------
# command_executor
# ------------------------------------------------------------------

@pytest.mark.parametrize("command,expected", [
    ("rm -rf /", True),
    ("sudo RM -RF build", True),
    ("dd if=/dev/zero of=x", True),
    ("mkfs.ext4 /dev/sda1", True),
    ("echo hi > /dev/sda", True),
    ("ls -la", False),
    ("git status", False),
])
def test_is_dangerous(command, expected):
    assert is_dangerous(command) is expected


def test_command_success(registry, workspace):
    result = registry.execute("command_executor", {"command": "echo hi"})
    assert result.success
    assert result.data["stdout"].strip() == "hi"
    assert result.data["exit_code"] == 0
    assert result.data["working_dir"] == str(workspace)
    assert result.data["duration_ms"] >= 0


def test_command_runs_in_workspace(registry):
    result = registry.execute("command_executor", {"command": "ls"})
    assert "main.py" in result.data["stdout"]


def test_command_failure_keeps_output(registry):
    result = registry.execute("command_executor", {"command": "echo oops >&2; exit 3"})
    assert not result.success
    assert result.data["exit_code"] == 3
    assert "oops" in result.data["stderr"]
    assert result.error == "Command exited with code 3"


def test_command_timeout(registry):
    result = registry.execute("command_executor", {"command": "sleep 5", "timeout": 1})
    assert not result.success
    assert result.data["exit_code"] == -1
    assert "timed out" in result.data["stderr"]


def test_command_cancel(registry):
    token = CancelToken(timeout=0.3)
    result = registry.execute("command_executor", {"command": "sleep 5"}, token)
    assert not result.success
    assert result.data["duration_ms"] < 4000


# ------------------------------------------------------------------
# code_searcher / project_analyzer
# ------------------------------------------------------------------

@pytest.mark.skipif(shutil.which("rg") is None and shutil.which("grep") is None, reason="no search tool")
def test_code_search_finds_matches(registry):
    result = registry.execute("code_searcher", {"query": "helper"})
    assert result.success
    files = {m["file"] for m in result.data["matches"]}
    assert "src/util.py" in files
    match = next(m for m in result.data["matches"] if m["file"] == "src/util.py")
    assert match["line"] == 1
    assert "def helper" in match["content"]


@pytest.mark.skipif(shutil.which("rg") is None and shutil.which("grep") is None, reason="no search tool")
def test_code_search_no_matches_is_success(registry):
    result = registry.execute("code_searcher", {"query": "zzz_not_present_anywhere"})
    assert result.success
    assert result.data["count"] == 0


@pytest.mark.skipif(shutil.which("rg") is None and shutil.which("grep") is None, reason="no search tool")
def test_code_search_file_pattern_and_limit(registry):
    result = registry.execute("code_searcher", {"query": "def", "file_pattern": "*.py", "max_results": 1})
    assert result.success
    assert result.data["count"] == 1


def test_structure_tree(registry, workspace):
    result = registry.execute("project_analyzer", {"type": "structure"})
    tree = result.data["tree"]
    assert tree[0] == f"{workspace.name}/"
    # directories first
    assert tree[1] == "├── src/"
    assert "│   └── util.py" in tree
    assert tree[-1].startswith("└── ")


def test_structure_respects_gitignore(registry, workspace):
    (workspace / ".gitignore").write_text("build/\n*.log\n")
    (workspace / "build").mkdir()
    (workspace / "build" / "out.bin").write_text("x")
    (workspace / "debug.log").write_text("x")
    (workspace / "node_modules").mkdir()
    from tools import IgnoreRules
    IgnoreRules.invalidate()

    result = registry.execute("project_analyzer", {"type": "files"})
    files = result.data["files"]
    assert files == ["README.md", "main.py", "src/util.py"]

def test_gitignore_edits_are_picked_up(registry, workspace):
    (workspace / ".gitignore").write_text("*.md\n")
    from tools import IgnoreRules
    IgnoreRules.invalidate()
    first = registry.execute("project_analyzer", {"type": "files"}).data["files"]
    assert "README.md" not in first

    gitignore = workspace / ".gitignore"
    gitignore.write_text("src/\n")
    stat = gitignore.stat()
    # force a new mtime even on coarse-grained filesystems
    os.utime(gitignore, ns=(stat.st_atime_ns, stat.st_mtime_ns + 2_000_000_000))
    second = registry.execute("project_analyzer", {"type": "files"}).data["files"]
    assert "README.md" in second
    assert "src/util.py" not in second



def test_stats(registry):
    result = registry.execute("project_analyzer", {"type": "stats"})
    assert result.data["total_files"] == 3
    assert result.data["total_dirs"] == 1
    assert result.data["file_types"]["py"] == 2


def test_analyzer_bad_type_and_path(registry):
    assert not registry.execute("project_analyzer", {"type": "graph"}).success
    assert not registry.execute("project_analyzer", {"path": "missing"}).success


# ------------------------------------------------------------------
# git_operations
# ------------------------------------------------------------------

def test_mutating_operations():
    assert not is_mutating("status")
    assert not is_mutating("log")
    assert is_mutating("commit")
    assert is_mutating("add")


def test_git_unknown_operation(registry):
    result = registry.execute("git_operations", {"operation": "rebase"})
    assert not result.success


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_git_status_add_commit_log(registry, workspace):
    def git(*args):
        subprocess.run(["git", *args], cwd=workspace, check=True, capture_output=True)

    git("init", "-q")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev")

    status = registry.execute("git_operations", {"operation": "status"})
    assert status.success
    assert "main.py" in status.data["output"]

    assert registry.execute("git_operations", {"operation": "add", "files": ["main.py"]}).success
    commit = registry.execute("git_operations", {"operation": "commit", "message": "first"})
    assert commit.success, commit.error

    log = registry.execute("git_operations", {"operation": "log", "limit": 5})
    assert "first" in log.data["output"]

    branch = registry.execute("git_operations", {"operation": "branch", "action": "create", "name": "feature"})
    assert branch.success
    listing = registry.execute("git_operations", {"operation": "branch"})
    assert "feature" in listing.data["output"]


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_git_outside_repository_fails(registry):
    result = registry.execute("git_operations", {"operation": "log"})
    if result.success:
        pytest.skip("workspace sits inside an enclosing git repository")
    assert result.error
