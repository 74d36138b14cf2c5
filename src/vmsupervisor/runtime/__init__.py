"""Runtime supervision components: liveness monitor, process terminator and supervisor loop."""

from vmsupervisor.runtime.contracts import MonitorState, TerminatorState
from vmsupervisor.runtime.monitor import LivenessMonitor, monitor_liveness
from vmsupervisor.runtime.probe import HealthzProbe, Probe, ProbeResult
from vmsupervisor.runtime.process import PopenProcessHandle, ProcessHandle, start_process
from vmsupervisor.runtime.supervisor import BuildletSupervisor, CycleOutcome
from vmsupervisor.runtime.terminator import ProcessTerminator, TerminationOutcome, wait_or_stop

__all__ = [
	"BuildletSupervisor",
	"CycleOutcome",
	"HealthzProbe",
	"LivenessMonitor",
	"MonitorState",
	"PopenProcessHandle",
	"Probe",
	"ProbeResult",
	"ProcessHandle",
	"ProcessTerminator",
	"TerminationOutcome",
	"TerminatorState",
	"monitor_liveness",
	"start_process",
	"wait_or_stop",
]
