# ============================================================================
# CANCELLATION TOKEN
# ============================================================================
# STATUS: Core - Cooperative cancellation
# PURPOSE: Signal interruption to actions running in coroutines or threads
# CREATED: 18 OCT 2026
# ============================================================================
"""
Cancellation Token

Every action invocation receives a CancellationToken. Cancellation is
cooperative: an action observes the token at its I/O boundaries and
either returns ActionResult.cancelled_result() or raises ActionCancelled.
An action that never checks the token runs to natural completion.

Tokens form a tree: cancelling a parent cancels every child created from
it (nested sub-processes), but cancelling a child leaves the parent alone.
"""

import asyncio
import threading
from typing import Callable, List, Optional

from core.errors import ActionCancelled


class CancellationToken:
    """Thread-safe cooperative cancellation signal."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._flag = threading.Event()
        self._waiters: List[asyncio.Event] = []
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        if parent is not None:
            parent.add_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._flag.is_set()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        with self._lock:
            if self._flag.is_set():
                return
            self._flag.set()
            waiters = list(self._waiters)
            callbacks = list(self._callbacks)

        for event in waiters:
            event.set()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._flag.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def child(self) -> "CancellationToken":
        """Create a token cancelled whenever this one is."""
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        """Raise ActionCancelled if cancellation was requested."""
        if self.cancelled:
            raise ActionCancelled("Cancellation requested")

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        event = asyncio.Event()
        with self._lock:
            if self._flag.is_set():
                return
            self._waiters.append(event)
        try:
            await event.wait()
        finally:
            with self._lock:
                if event in self._waiters:
                    self._waiters.remove(event)

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to `seconds`.

        Returns:
            True if the full interval elapsed, False if cancelled first
        """
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self.wait(), timeout=max(seconds, 0))
            return False
        except asyncio.TimeoutError:
            return True


__all__ = ["CancellationToken"]
