"""Git tool: git_operations."""

import logging
from typing import Any, Dict, List, Optional

from cancellation import CancelToken
from tools._common import (
    Tool, ToolResult, ToolInputError,
    require_str, optional_str, optional_int, optional_str_list,
)

logger = logging.getLogger(__name__)

GIT_OPERATIONS = ("status", "diff", "log", "add", "commit", "branch")
READ_ONLY_GIT_OPERATIONS = frozenset({"status", "diff", "log"})
BRANCH_ACTIONS = ("list", "create", "checkout")
GIT_TIMEOUT = 30


def is_mutating(operation: str) -> bool:
    return (operation or "").strip().lower() not in READ_ONLY_GIT_OPERATIONS


class GitOperations(Tool):
    """Runs a fixed set of git subcommands in the working directory."""

    name = "git_operations"
    description = "Git operations: status, diff, log, add, commit, branch"

    def requires_confirmation(self) -> bool:
        return True

    def _args(self, operation: str, params: Dict[str, Any]) -> List[str]:
        if operation == "status":
            return ["git", "status", "--short", "--branch"]
        if operation == "diff":
            args = ["git", "diff"]
            if params.get("staged") is True:
                args.append("--cached")
            path = optional_str(params, "file")
            return args + (["--", path] if path else [])
        if operation == "log":
            limit = optional_int(params, "limit", 10)
            return ["git", "log", "--oneline", f"-n{max(1, limit)}"]
        if operation == "add":
            files = optional_str_list(params, "files", ["."])
            return ["git", "add", "--"] + files
        if operation == "commit":
            return ["git", "commit", "-m", require_str(params, "message")]

        action = optional_str(params, "action", "list") or "list"
        if action not in BRANCH_ACTIONS:
            raise ToolInputError(f"invalid branch action {action!r}, expected one of: {', '.join(BRANCH_ACTIONS)}")
        if action == "list":
            return ["git", "branch", "--list"]
        name = require_str(params, "name")
        if action == "create":
            return ["git", "branch", name]
        return ["git", "checkout", name]

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        operation = require_str(params, "operation").strip().lower()
        if operation not in GIT_OPERATIONS:
            return ToolResult.fail(
                f"unsupported git operation {operation!r}, expected one of: {', '.join(GIT_OPERATIONS)}"
            )
        args = self._args(operation, params)
        stdout, stderr, rc = self.backend.run_args(args, cwd=".", timeout=GIT_TIMEOUT)
        if rc != 0:
            return ToolResult.fail(
                stderr.strip() or f"git {operation} failed (exit {rc})",
                operation=operation, output=stdout, exit_code=rc,
            )
        logger.info(f"git {operation} ok")
        return ToolResult.ok(stdout, operation=operation, output=stdout, exit_code=rc)
