import pytest
import subprocess
import sys
import threading
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


class FakeProcess:
    """
    In-memory ProcessHandle. Records interrupt/kill calls in order and
    exits on them according to its flags.
    """

    def __init__(
        self,
        pid: int = 4242,
        exit_on_interrupt: bool = True,
        exit_on_kill: bool = True,
        interrupt_error: Exception = None,
        kill_error: Exception = None,
    ):
        self.pid = pid
        self.exit_on_interrupt = exit_on_interrupt
        self.exit_on_kill = exit_on_kill
        self.interrupt_error = interrupt_error
        self.kill_error = kill_error
        self.calls = []
        self.returncode = None
        self._exited = threading.Event()

    def exit(self, returncode: int = 0) -> None:
        if self._exited.is_set():
            return
        self.returncode = returncode
        self._exited.set()

    def wait(self, timeout=None) -> int:
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("fake-vm", timeout)
        return self.returncode

    def interrupt(self) -> None:
        self.calls.append("interrupt")
        if self.interrupt_error is not None:
            raise self.interrupt_error
        if self.exit_on_interrupt:
            self.exit(-2)

    def kill(self) -> None:
        self.calls.append("kill")
        if self.kill_error is not None:
            raise self.kill_error
        if self.exit_on_kill:
            self.exit(-9)


@pytest.fixture
def make_process():
    """
    Returns a factory for FakeProcess handles.
    """
    return FakeProcess
