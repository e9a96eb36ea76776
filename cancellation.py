"""
Cancellation tokens shared by the Ollama client and the subagent supervisor.

A token is cancelled at most once and remembers why: an explicit cancel()
or an elapsed deadline. Callers ask the token for its cause instead of
guessing it from which signal fired first.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

CAUSE_CANCELED = "canceled"
CAUSE_DEADLINE = "deadline"


class CancelToken:
    """Thread-safe cancellation handle with an optional deadline."""

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cause: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None
        self.deadline: Optional[float] = None
        if timeout is not None:
            self.deadline = time.monotonic() + timeout
            self._timer = threading.Timer(max(timeout, 0.0), self._cancel, args=(CAUSE_DEADLINE,))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Cancel the token. No-op if it is already cancelled."""
        self._cancel(CAUSE_CANCELED)

    def _cancel(self, cause: str) -> None:
        with self._lock:
            if self._cause is not None:
                return
            self._cause = cause
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        if self._timer is not None:
            self._timer.cancel()
        self._event.set()
        for cb in callbacks:
            try:
                cb()
            except Exception as e:
                logger.debug(f"Cancel callback failed: {e}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def cause(self) -> Optional[str]:
        """CAUSE_CANCELED, CAUSE_DEADLINE, or None while still live."""
        with self._lock:
            return self._cause

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout elapses. Returns True if cancelled."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (immediately if already cancelled)."""
        with self._lock:
            if self._cause is None:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def release(self) -> None:
        """Stop the deadline timer without cancelling. Call once the guarded work is over."""
        if self._timer is not None:
            self._timer.cancel()
