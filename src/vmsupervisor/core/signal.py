from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, List, Optional


class CancelReason(str, Enum):
    """Why a lifecycle signal fired."""

    INTERRUPTED = "interrupted"
    PARENT_CANCELLED = "parent_cancelled"
    HEALTH_TIMEOUT = "health_timeout"
    NORMAL_EXIT = "normal_exit"


SignalCallback = Callable[[CancelReason], None]


class LifecycleSignal:
    """One-shot broadcast cancellation token with an inspectable reason.

    The first ``cancel()`` wins: it records the reason, wakes every waiter and
    runs every registered callback exactly once. Later calls are no-ops.
    A signal created with ``derive()`` fires with
    ``CancelReason.PARENT_CANCELLED`` as soon as its parent fires.
    """

    def __init__(self, name: str = "root") -> None:
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[CancelReason] = None
        self._callbacks: List[SignalCallback] = []
        self._detach_from_parent: Optional[Callable[[], None]] = None

    def __repr__(self) -> str:
        state = self._reason.value if self._reason is not None else "pending"
        return f"LifecycleSignal(name={self.name!r}, state={state})"

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        """Cause of cancellation, or None while the signal is pending."""
        with self._lock:
            return self._reason

    def cancel(self, reason: CancelReason) -> bool:
        """Fire the signal; returns True only for the call that fired it."""
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
            callbacks = self._callbacks
            self._callbacks = []
            self._event.set()

        for callback in callbacks:
            callback(reason)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until fired or until timeout elapses; returns whether fired."""
        return self._event.wait(timeout)

    def add_callback(self, callback: SignalCallback) -> Callable[[], None]:
        """Run callback once when the signal fires, immediately if already fired.

        Returns a function that unregisters the callback.
        """
        with self._lock:
            reason = self._reason
            if reason is None:
                self._callbacks.append(callback)

        if reason is not None:
            callback(reason)
            return lambda: None

        def remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def derive(self, name: str) -> "LifecycleSignal":
        """Create a child signal that fires when this signal fires."""
        child = LifecycleSignal(name=name)
        child._detach_from_parent = self.add_callback(
            lambda _reason: child.cancel(CancelReason.PARENT_CANCELLED)
        )
        return child

    def detach(self) -> None:
        """Stop listening to the parent signal, if any."""
        detach = self._detach_from_parent
        self._detach_from_parent = None
        if detach is not None:
            detach()
