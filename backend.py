"""
Backend abstraction for file and command operations.
Tools reach the workspace only through a Backend, which confines every path
to the working directory and runs shell commands in their own process group.
"""

import logging
import os
import signal
import subprocess
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Sequence, Tuple

from cancellation import CancelToken

logger = logging.getLogger(__name__)

# (stdout, stderr, exit code); -1 when the process was stopped by us
CommandOutput = Tuple[str, str, int]


class PathEscapeError(ValueError):
    """A tool path resolved outside the working directory"""
    pass


class Backend(ABC):
    """Workspace access used by the tools. Paths are relative to working_directory."""

    @property
    @abstractmethod
    def working_directory(self) -> str:
        ...

    @abstractmethod
    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        """Sorted entries: {name, type} plus ext (no dot) and size for files."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        ...

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        ...

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Replace the file, creating parent directories."""

    @abstractmethod
    def append_file(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        ...

    @abstractmethod
    def file_size(self, path: str) -> int:
        ...

    @abstractmethod
    def run_command(self, command: str, cwd: str = ".", timeout: int = 60,
                    cancel: Optional[CancelToken] = None) -> CommandOutput:
        """Shell command. Timeout and cancel kill the whole process group."""

    @abstractmethod
    def run_args(self, args: Sequence[str], cwd: str = ".", timeout: int = 30) -> CommandOutput:
        """Program invocation without a shell (git, rg, grep)."""

    def resolve_path(self, path: str) -> str:
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self.working_directory, path))

    def relative_path(self, path: str) -> str:
        return os.path.relpath(self.resolve_path(path), self.working_directory)


# ============================================================
# Local Backend
# ============================================================

class LocalBackend(Backend):
    """Local filesystem rooted at one directory. Symlinks are followed before the containment check."""

    def __init__(self, working_directory: str = "."):
        self._root = os.path.abspath(working_directory)
        self._real_root = os.path.realpath(self._root)

    @property
    def working_directory(self) -> str:
        return self._root

    def confine(self, path: str) -> str:
        """Absolute path for a workspace path; raises PathEscapeError outside the root."""
        full = self.resolve_path(path) if path and path != "." else self._root
        real = os.path.realpath(full)
        if real != self._real_root and not real.startswith(self._real_root + os.sep):
            raise PathEscapeError(f"Path escapes working directory: {path!r}")
        return full

    @staticmethod
    def _describe(directory: str, name: str) -> Optional[Dict[str, Any]]:
        child = os.path.join(directory, name)
        if os.path.isdir(child):
            return {"name": name, "type": "directory"}
        if os.path.isfile(child):
            return {
                "name": name,
                "type": "file",
                "ext": os.path.splitext(name)[1].lstrip("."),
                "size": os.path.getsize(child),
            }
        # sockets, broken links
        return None

    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        directory = self.confine(path)
        described = (self._describe(directory, name) for name in sorted(os.listdir(directory)))
        return [entry for entry in described if entry is not None]

    def read_file(self, path: str) -> str:
        with open(self.confine(path), "r", encoding="utf-8", errors="replace") as f:
            return f.read()

    def read_bytes(self, path: str) -> bytes:
        with open(self.confine(path), "rb") as f:
            return f.read()

    def _write(self, path: str, content: str, open_mode: str) -> None:
        full = self.confine(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, open_mode, encoding="utf-8") as f:
            f.write(content)
        logger.debug(f"Wrote {len(content)} chars to {path} ({open_mode})")

    def write_file(self, path: str, content: str) -> None:
        self._write(path, content, "w")

    def append_file(self, path: str, content: str) -> None:
        self._write(path, content, "a")

    def file_exists(self, path: str) -> bool:
        return os.path.exists(self.confine(path))

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(self.confine(path))

    def file_size(self, path: str) -> int:
        return os.path.getsize(self.confine(path))

    def run_command(self, command: str, cwd: str = ".", timeout: int = 60,
                    cancel: Optional[CancelToken] = None) -> CommandOutput:
        if cancel is not None and cancel.cancelled:
            return "", "Command canceled before start", -1
        proc = subprocess.Popen(
            command, shell=True, cwd=self.confine(cwd),
            stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            text=True, encoding="utf-8", errors="replace",
            start_new_session=True,
        )
        stop = lambda: terminate_group(proc)  # noqa: E731
        if cancel is not None:
            cancel.add_callback(stop)
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            terminate_group(proc)
            stdout, stderr = proc.communicate(timeout=5)
            logger.warning(f"Command timed out after {timeout}s: {command}")
            return stdout or "", f"Command timed out after {timeout}s\n{stderr or ''}", -1
        finally:
            if cancel is not None:
                cancel.remove_callback(stop)

        if cancel is not None and cancel.cancelled:
            return stdout or "", f"Command canceled\n{stderr or ''}", -1
        return stdout or "", stderr or "", proc.returncode

    def run_args(self, args: Sequence[str], cwd: str = ".", timeout: int = 30) -> CommandOutput:
        completed = subprocess.run(
            list(args), cwd=self.confine(cwd), stdin=subprocess.DEVNULL,
            capture_output=True, text=True, encoding="utf-8", errors="replace", timeout=timeout,
        )
        return completed.stdout or "", completed.stderr or "", completed.returncode


def terminate_group(proc: subprocess.Popen) -> None:
    """SIGTERM the process group started for proc, then kill proc itself."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
        except OSError:
            pass
    try:
        proc.kill()
    except OSError:
        pass
