"""Shell command tool: command_executor."""

import logging
import time
from typing import Any, Dict, Optional

from backend import Backend
from cancellation import CancelToken
from tools._common import Tool, ToolResult, require_str, optional_int

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 60

# Case-insensitive substrings; "format" also hits harmless commands.
DANGEROUS_PATTERNS = (
    "rm -rf",
    "rm -fr",
    "del /f",
    "format",
    "mkfs",
    "dd if=",
    "> /dev/",
    ":(){ :|:& };:",
    "chmod -r 777",
    "chown -r",
)

_MAX_OUTPUT_CHARS = 20000


def is_dangerous(command: str) -> bool:
    lowered = (command or "").lower()
    return any(pattern in lowered for pattern in DANGEROUS_PATTERNS)


def _format_output(stdout: str, stderr: str, rc: int) -> str:
    parts = []
    if stdout:
        parts.append(stdout)
    if stderr:
        parts.append(f"[stderr]\n{stderr}")
    output = "\n".join(parts) if parts else "(no output)"
    if rc != 0:
        output = f"[exit code: {rc}]\n{output}"

    if len(output) > _MAX_OUTPUT_CHARS:
        lines_out = output.split("\n")
        if len(lines_out) > 200:
            output = "\n".join(lines_out[:100]) + f"\n\n... [{len(lines_out) - 150} lines truncated] ...\n\n" + "\n".join(lines_out[-50:])
        else:
            output = output[:10000] + "\n\n... [truncated] ...\n\n" + output[-5000:]
    return output


class CommandExecutor(Tool):
    """Runs a shell command in the working directory with a timeout."""

    name = "command_executor"
    description = "Execute a shell command in the working directory"

    def __init__(self, backend: Backend, timeout: int = DEFAULT_COMMAND_TIMEOUT):
        super().__init__(backend)
        self.timeout = timeout

    def requires_confirmation(self) -> bool:
        return True

    def is_dangerous(self, command: str) -> bool:
        return is_dangerous(command)

    def _run(self, params: Dict[str, Any], cancel: Optional[CancelToken]) -> ToolResult:
        command = require_str(params, "command")
        timeout = optional_int(params, "timeout", self.timeout)
        if timeout <= 0:
            timeout = self.timeout

        logger.info(f"Running command: {command}")
        start = time.monotonic()
        stdout, stderr, rc = self.backend.run_command(command, cwd=".", timeout=timeout, cancel=cancel)
        duration_ms = int((time.monotonic() - start) * 1000)

        data = {
            "command": command,
            "exit_code": rc,
            "stdout": stdout,
            "stderr": stderr,
            "duration_ms": duration_ms,
            "working_dir": self.backend.working_directory,
        }
        if rc == 0:
            return ToolResult.ok(_format_output(stdout, stderr, rc), **data)
        result = ToolResult.fail(f"Command exited with code {rc}", **data)
        result.message = _format_output(stdout, stderr, rc)
        return result
