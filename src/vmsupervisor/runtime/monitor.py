from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Tuple

from vmsupervisor.core.signal import CancelReason, LifecycleSignal
from vmsupervisor.runtime.contracts import (
    MonitorEvent,
    MonitorState,
    transition_monitor_state,
)
from vmsupervisor.runtime.probe import Probe, ProbeResult

log = logging.getLogger(__name__)


class LivenessMonitor:
    """Derives a lifecycle signal from periodic health probes.

    The derived ``signal`` fires with ``HEALTH_TIMEOUT`` once a probe fails
    and more than ``failure_window`` seconds have passed since the last
    passing probe (or since ``start()``, if none has passed yet). It fires
    with ``PARENT_CANCELLED`` as soon as the parent fires.
    """

    def __init__(
        self,
        parent: LifecycleSignal,
        probe: Probe,
        interval: float = 30.0,
        failure_window: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        join_timeout: float = 5.0,
    ) -> None:
        self.parent = parent
        self.probe = probe
        self.interval = interval
        self.failure_window = failure_window
        self.clock = clock
        self.join_timeout = join_timeout

        self.signal = parent.derive("liveness")
        self.state: MonitorState = MonitorState.IDLE
        self.probe_count = 0
        self.consecutive_failures = 0
        self._started_at: Optional[float] = None
        self._last_success: Optional[float] = None
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()

    def start(self, background: bool = True, now: Optional[float] = None) -> None:
        """Start the failure clock and, when background is True, the probe timer thread."""
        if not self._transition(MonitorEvent.START, expected=MonitorState.IDLE):
            return
        self._started_at = self.clock() if now is None else now

        if background:
            self._thread = threading.Thread(
                target=self._poll_loop,
                name="liveness-monitor",
                daemon=True,
            )
            self._thread.start()

    def observe(self, result: ProbeResult, now: float) -> bool:
        """Record one probe result; returns True when it fired the health timeout."""
        if self._started_at is None:
            raise RuntimeError("LivenessMonitor is not started. Call start() before observe().")

        if self.signal.fired:
            return False

        if result.passed:
            if self.consecutive_failures:
                log.info("Health probe recovered after %d failed checks.", self.consecutive_failures)
            elif self._last_success is None:
                log.info("First passing health probe.")
            self.consecutive_failures = 0
            self._last_success = now
            return False

        self.consecutive_failures += 1

        reference = self._last_success if self._last_success is not None else self._started_at
        elapsed = now - reference
        log.warning(
            "Health probe failed (%.0fs since last success, window %.0fs): %s",
            elapsed,
            self.failure_window,
            result.error,
        )
        if elapsed <= self.failure_window:
            return False

        if self.signal.cancel(CancelReason.HEALTH_TIMEOUT):
            self._transition(MonitorEvent.WINDOW_EXCEEDED, expected=MonitorState.POLLING)
            log.error(
                "Health timeout: no passing probe for %.0fs (window %.0fs). Stopping VM.",
                elapsed,
                self.failure_window,
            )
            return True
        return False

    def release(self) -> None:
        """Stop probing and release the derived signal. Safe to call repeatedly."""
        self.signal.cancel(CancelReason.NORMAL_EXIT)
        self.signal.detach()

        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.join_timeout)
            if thread.is_alive():
                log.warning("Liveness monitor thread still running a probe after release.")

        self._transition(MonitorEvent.RELEASE)

    def _poll_loop(self) -> None:
        while not self.signal.wait(self.interval):
            self.probe_count += 1
            if self.observe(self._run_probe(), now=self.clock()):
                return

        if self.signal.reason == CancelReason.PARENT_CANCELLED:
            log.info("Liveness monitor stopped: parent signal cancelled.")
            self._transition(MonitorEvent.PARENT_CANCELLED, expected=MonitorState.POLLING)

    def _run_probe(self) -> ProbeResult:
        try:
            return self.probe()
        except Exception as exc:
            log.debug("Health probe raised", exc_info=True)
            return ProbeResult.failure(f"{type(exc).__name__}: {exc}")

    def _transition(self, event: MonitorEvent, expected: Optional[MonitorState] = None) -> bool:
        with self._state_lock:
            if expected is not None and self.state != expected:
                return False
            self.state = transition_monitor_state(self.state, event)
            return True


def monitor_liveness(
    parent: LifecycleSignal,
    probe: Probe,
    interval: float,
    failure_window: float,
) -> Tuple[LifecycleSignal, Callable[[], None]]:
    """Start a background liveness monitor and return its signal and release function."""
    monitor = LivenessMonitor(parent, probe, interval=interval, failure_window=failure_window)
    monitor.start()
    return monitor.signal, monitor.release
