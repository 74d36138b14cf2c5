from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from typing import Dict, Optional, Protocol

from vmsupervisor.core.models import LaunchCommand
from vmsupervisor.utils.errors import LaunchError

log = logging.getLogger(__name__)


class ProcessHandle(Protocol):
    """Running external process owned by one supervision cycle."""

    pid: int

    def wait(self, timeout: Optional[float] = None) -> int:
        ...

    def interrupt(self) -> None:
        ...

    def kill(self) -> None:
        ...


class PopenProcessHandle:
    """ProcessHandle backed by ``subprocess.Popen``."""

    def __init__(self, popen: subprocess.Popen) -> None:
        self.popen = popen
        self.pid = popen.pid

    def __repr__(self) -> str:
        return f"PopenProcessHandle(pid={self.pid}, returncode={self.popen.returncode})"

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.popen.wait(timeout=timeout)

    def interrupt(self) -> None:
        """Send the platform interrupt equivalent (SIGINT, or CTRL_BREAK on Windows)."""
        if sys.platform == "win32":
            self.popen.send_signal(signal.CTRL_BREAK_EVENT)
        else:
            self.popen.send_signal(signal.SIGINT)

    def kill(self) -> None:
        self.popen.kill()


def _get_popen_session_flags() -> Dict[str, object]:
    """Detach the child from the supervisor's console so Ctrl-C reaches only the supervisor."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def start_process(command: LaunchCommand) -> PopenProcessHandle:
    """Start command with inherited stdout/stderr; raises LaunchError when the OS refuses."""
    env = os.environ.copy()
    env.update(command.env)

    try:
        popen = subprocess.Popen(
            command.argv(),
            env=env,
            cwd=command.cwd,
            stdin=subprocess.DEVNULL,
            **_get_popen_session_flags(),
        )
    except (OSError, ValueError) as exc:
        raise LaunchError(str(exc), command=command.render()) from exc

    log.info("Started VM process pid=%d", popen.pid)
    return PopenProcessHandle(popen)

