from __future__ import annotations

from vmsupervisor.core.models import SupervisorConfig
from vmsupervisor.core.signal import CancelReason, LifecycleSignal

__version__ = "0.1.0"

__all__ = [
	"CancelReason",
	"LifecycleSignal",
	"SupervisorConfig",
	"__version__",
]
