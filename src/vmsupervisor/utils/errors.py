from typing import Optional


class SupervisorError(Exception):
    """
    Base class for failures of one supervision cycle. The supervisor loop
    recovers from these by backing off and starting a new cycle.
    """


class LaunchError(SupervisorError):
    """
    Exception raised when the VM process could not be started.
    """
    def __init__(self, message: str, command: Optional[str] = None):
        self.message = message
        self.command = command
        ctx = f" for command '{command}'" if command else ""
        super().__init__(f"Launch Error{ctx}: {message}")


class ProcessExitError(SupervisorError):
    """
    Exception raised when the VM process exits on its own with a failure.
    """
    def __init__(self, pid: int, returncode: Optional[int], message: Optional[str] = None):
        self.pid = pid
        self.returncode = returncode
        detail = message or f"exit status {returncode}"
        super().__init__(f"Process pid={pid} exited unexpectedly: {detail}")


class ReapError(SupervisorError):
    """
    Exception raised when a forcibly killed process is never confirmed gone.
    """
    def __init__(self, pid: int, timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(f"Process pid={pid} was not reaped within {timeout:g}s after kill")
