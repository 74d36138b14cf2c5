from __future__ import annotations

from enum import Enum


class TerminatorState(str, Enum):
    """States of the wait-or-stop termination machine."""

    RUNNING = "running"
    STOPPING = "stopping"
    KILLING = "killing"
    EXITED = "exited"


class TerminatorEvent(str, Enum):
    """Events that drive terminator state transitions."""

    PROCESS_EXITED = "process_exited"
    SIGNAL_FIRED = "signal_fired"
    GRACE_EXPIRED = "grace_expired"


class MonitorState(str, Enum):
    """High-level states for the liveness monitor lifecycle."""

    IDLE = "idle"
    POLLING = "polling"
    EXPIRED = "expired"
    STOPPED = "stopped"


class MonitorEvent(str, Enum):
    """Events that drive liveness monitor state transitions."""

    START = "start"
    WINDOW_EXCEEDED = "window_exceeded"
    PARENT_CANCELLED = "parent_cancelled"
    RELEASE = "release"


def transition_terminator_state(current: TerminatorState, event: TerminatorEvent) -> TerminatorState:
    """Compute the next terminator state for a given event.

    The only path to KILLING goes through STOPPING, so an interrupt is always
    sent before a kill. EXITED is terminal. Invalid transitions raise ValueError.
    """

    if current == TerminatorState.RUNNING:
        if event == TerminatorEvent.PROCESS_EXITED:
            return TerminatorState.EXITED
        if event == TerminatorEvent.SIGNAL_FIRED:
            return TerminatorState.STOPPING
        raise ValueError(f"Invalid terminator transition: {current} -> {event}")

    if current == TerminatorState.STOPPING:
        if event == TerminatorEvent.PROCESS_EXITED:
            return TerminatorState.EXITED
        if event == TerminatorEvent.GRACE_EXPIRED:
            return TerminatorState.KILLING
        raise ValueError(f"Invalid terminator transition: {current} -> {event}")

    if current == TerminatorState.KILLING:
        if event == TerminatorEvent.PROCESS_EXITED:
            return TerminatorState.EXITED
        raise ValueError(f"Invalid terminator transition: {current} -> {event}")

    if current == TerminatorState.EXITED:
        raise ValueError(f"Invalid terminator transition: {current} -> {event}")

    raise ValueError(f"Unknown terminator state: {current}")


def transition_monitor_state(current: MonitorState, event: MonitorEvent) -> MonitorState:
    """Compute the next monitor state for a given event.

    RELEASE is accepted from every state so that release stays idempotent.
    """

    if event == MonitorEvent.RELEASE:
        return MonitorState.STOPPED

    if current == MonitorState.IDLE:
        if event == MonitorEvent.START:
            return MonitorState.POLLING
        if event == MonitorEvent.PARENT_CANCELLED:
            return MonitorState.EXPIRED
        raise ValueError(f"Invalid monitor transition: {current} -> {event}")

    if current == MonitorState.POLLING:
        if event in {MonitorEvent.WINDOW_EXCEEDED, MonitorEvent.PARENT_CANCELLED}:
            return MonitorState.EXPIRED
        raise ValueError(f"Invalid monitor transition: {current} -> {event}")

    if current in {MonitorState.EXPIRED, MonitorState.STOPPED}:
        raise ValueError(f"Invalid monitor transition: {current} -> {event}")

    raise ValueError(f"Unknown monitor state: {current}")
