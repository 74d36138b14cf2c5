from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from vmsupervisor.core.signal import CancelReason, LifecycleSignal
from vmsupervisor.runtime.contracts import (
    TerminatorEvent,
    TerminatorState,
    transition_terminator_state,
)
from vmsupervisor.runtime.process import ProcessHandle
from vmsupervisor.utils.errors import ProcessExitError, ReapError

log = logging.getLogger(__name__)


@dataclass
class TerminationOutcome:
    """How one process left the terminator."""

    state: TerminatorState
    returncode: Optional[int] = None
    stop_reason: Optional[CancelReason] = None
    forced: bool = False
    path: List[TerminatorState] = field(default_factory=list)


class _ExitWaiter:
    """Blocks in ``process.wait()`` on its own thread and records the result."""

    def __init__(self, process: ProcessHandle, wake: threading.Event) -> None:
        self.process = process
        self.exited = threading.Event()
        self.returncode: Optional[int] = None
        self.error: Optional[BaseException] = None
        self._wake = wake
        self._thread = threading.Thread(
            target=self._run,
            name=f"process-waiter-{process.pid}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self.returncode = self.process.wait()
        except Exception as exc:
            self.error = exc
        finally:
            self.exited.set()
            self._wake.set()


class ProcessTerminator:
    """Waits for a process to exit, stopping it when a lifecycle signal fires.

    RUNNING waits on both the process and the signal. When the signal wins,
    STOPPING sends an interrupt and allows ``grace_period`` seconds for the
    process to exit. If it is still alive after that, KILLING kills it and
    waits up to ``reap_timeout`` seconds for the exit to be confirmed.
    """

    def __init__(
        self,
        signal: LifecycleSignal,
        process: ProcessHandle,
        grace_period: float = 60.0,
        reap_timeout: float = 30.0,
    ) -> None:
        self.signal = signal
        self.process = process
        self.grace_period = grace_period
        self.reap_timeout = reap_timeout

        self.state = TerminatorState.RUNNING
        self.path: List[TerminatorState] = [self.state]
        self._wake = threading.Event()
        self._waiter = _ExitWaiter(process, self._wake)

    def run(self) -> TerminationOutcome:
        """Drive the machine to EXITED; raises ProcessExitError or ReapError."""
        remove_callback = self.signal.add_callback(lambda _reason: self._wake.set())
        self._waiter.start()
        try:
            self._run_running()
            if self.state == TerminatorState.STOPPING:
                self._run_stopping()
            if self.state == TerminatorState.KILLING:
                self._run_killing()
        finally:
            remove_callback()

        return TerminationOutcome(
            state=self.state,
            returncode=self._waiter.returncode,
            stop_reason=self.signal.reason if TerminatorState.STOPPING in self.path else None,
            forced=TerminatorState.KILLING in self.path,
            path=list(self.path),
        )

    def _run_running(self) -> None:
        self._wake.wait()

        if self._waiter.exited.is_set():
            self._advance(TerminatorEvent.PROCESS_EXITED)
            if self._waiter.error is not None:
                raise ProcessExitError(
                    self.process.pid, None, message=f"wait failed: {self._waiter.error}"
                ) from self._waiter.error
            if self._waiter.returncode:
                raise ProcessExitError(self.process.pid, self._waiter.returncode)
            log.info("VM process pid=%d exited cleanly.", self.process.pid)
            return

        self._advance(TerminatorEvent.SIGNAL_FIRED)

    def _run_stopping(self) -> None:
        reason = self.signal.reason.value if self.signal.reason is not None else "unknown"
        try:
            self.process.interrupt()
            log.info(
                "Sent interrupt to VM process pid=%d (%s); waiting up to %gs for exit.",
                self.process.pid,
                reason,
                self.grace_period,
            )
        except OSError as exc:
            log.warning("Failed to interrupt VM process pid=%d: %s", self.process.pid, exc)

        if self._waiter.exited.wait(self.grace_period):
            self._advance(TerminatorEvent.PROCESS_EXITED)
            log.info(
                "VM process pid=%d stopped after interrupt (exit status %s).",
                self.process.pid,
                self._waiter.returncode,
            )
            return

        self._advance(TerminatorEvent.GRACE_EXPIRED)

    def _run_killing(self) -> None:
        log.warning(
            "VM process pid=%d still running %gs after interrupt; killing.",
            self.process.pid,
            self.grace_period,
        )
        try:
            self.process.kill()
        except OSError as exc:
            log.warning("Failed to kill VM process pid=%d: %s", self.process.pid, exc)

        if not self._waiter.exited.wait(self.reap_timeout):
            log.critical(
                "VM process pid=%d not reaped %gs after kill.",
                self.process.pid,
                self.reap_timeout,
            )
            raise ReapError(self.process.pid, self.reap_timeout)

        self._advance(TerminatorEvent.PROCESS_EXITED)
        log.info("VM process pid=%d killed.", self.process.pid)

    def _advance(self, event: TerminatorEvent) -> None:
        next_state = transition_terminator_state(self.state, event)
        log.debug("Terminator %s -> %s (%s)", self.state.value, next_state.value, event.value)
        self.state = next_state
        self.path.append(next_state)


def wait_or_stop(
    signal: LifecycleSignal,
    process: ProcessHandle,
    grace_period: float = 60.0,
    reap_timeout: float = 30.0,
) -> TerminationOutcome:
    """Wait for process to exit, interrupting and then killing it once signal fires."""
    return ProcessTerminator(signal, process, grace_period, reap_timeout).run()
