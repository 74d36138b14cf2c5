from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from vmsupervisor.core.models import LaunchCommand, SupervisorConfig
from vmsupervisor.core.signal import LifecycleSignal
from vmsupervisor.runtime.monitor import LivenessMonitor
from vmsupervisor.runtime.probe import HealthzProbe, Probe
from vmsupervisor.runtime.process import ProcessHandle, start_process
from vmsupervisor.runtime.terminator import TerminationOutcome, wait_or_stop
from vmsupervisor.utils.errors import ReapError, SupervisorError

log = logging.getLogger(__name__)

# Slack on top of the probe timeout when waiting for the monitor thread to finish.
PROBE_JOIN_MARGIN_S = 1.0

Launcher = Callable[[LaunchCommand], ProcessHandle]


@dataclass(frozen=True)
class CycleOutcome:
    """Host-facing result of one supervision cycle."""

    cycle: int
    outcome: Optional[TerminationOutcome] = None
    error: Optional[SupervisorError] = None


class BuildletSupervisor:
    """Keeps one buildlet VM running: start, monitor, terminate, repeat."""

    def __init__(
        self,
        config: SupervisorConfig,
        launcher: Launcher = start_process,
        probe: Optional[Probe] = None,
        on_cycle_end: Optional[Callable[[CycleOutcome], None]] = None,
    ) -> None:
        self.config = config
        self.launcher = launcher
        self.probe = probe or HealthzProbe(
            config.probe.healthz_url,
            timeout=config.probe.timeout_s,
        )
        self.on_cycle_end = on_cycle_end
        self.cycles = 0

    def run(self, root: LifecycleSignal) -> None:
        """Run supervision cycles until root fires; returns once the last cycle has ended."""
        backoff = self.config.supervisor.backoff_s
        while not root.fired:
            self.cycles += 1
            try:
                outcome = self.run_cycle(root)
            except SupervisorError as exc:
                self._notify(CycleOutcome(cycle=self.cycles, error=exc))
                level = logging.CRITICAL if isinstance(exc, ReapError) else logging.ERROR
                log.log(level, "Supervision cycle %d failed: %s. Retrying in %g seconds.", self.cycles, exc, backoff)
                root.wait(backoff)
                continue

            self._notify(CycleOutcome(cycle=self.cycles, outcome=outcome))

        log.info("Stop requested (%s); supervisor exiting.", root.reason.value if root.reason else "unknown")

    def run_cycle(self, root: LifecycleSignal) -> TerminationOutcome:
        """Start the VM, watch its health and wait for it to end."""
        command = self.config.build_command()
        log.info("Starting VM: %s", command.render())
        process = self.launcher(command)

        monitor = LivenessMonitor(
            root,
            self.probe,
            interval=self.config.probe.interval_s,
            failure_window=self.config.probe.failure_window_s,
            join_timeout=self.config.probe.timeout_s + PROBE_JOIN_MARGIN_S,
        )
        monitor.start()
        try:
            outcome = wait_or_stop(
                monitor.signal,
                process,
                grace_period=self.config.supervisor.grace_period_s,
                reap_timeout=self.config.supervisor.reap_timeout_s,
            )
        finally:
            monitor.release()

        log.info(
            "Supervision cycle %d ended: %s",
            self.cycles,
            " -> ".join(state.value for state in outcome.path),
        )
        return outcome

    def _notify(self, result: CycleOutcome) -> None:
        if self.on_cycle_end is not None:
            self.on_cycle_end(result)
