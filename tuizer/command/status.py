import enum
import signal
from typing import Optional

SIGKILL = getattr(signal, "SIGKILL", 9)
SIGTERM = signal.SIGTERM


class CommandStatus(str, enum.Enum):
    """Lifecycle status of a supervised command."""
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    STOPPED = "STOPPED"
    KILLED = "KILLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    CommandStatus.FINISHED,
    CommandStatus.ERROR,
    CommandStatus.STOPPED,
    CommandStatus.KILLED,
})


def split_returncode(returncode: Optional[int]):
    """
    Splits a `subprocess` return code into an (exit code, signal) pair.
    On POSIX a negative return code means the process died from signal `-returncode`.
    """
    if returncode is not None and returncode < 0:
        return None, -returncode
    return returncode, None


def status_from_exit(code: Optional[int], sig: Optional[int]) -> CommandStatus:
    """
    Maps the way a process exited to its terminal status.

    :param code: The numeric exit code, or None when the process was signalled.
    :param sig: The terminating signal number, if any.
    :return CommandStatus: The terminal status.
    """
    if sig == SIGKILL:
        return CommandStatus.KILLED
    if sig == SIGTERM:
        return CommandStatus.STOPPED
    if sig is not None:
        # Any other fatal signal (SIGSEGV, SIGINT, ...) is a failure.
        return CommandStatus.ERROR
    if code is not None and code > 0:
        return CommandStatus.ERROR
    return CommandStatus.FINISHED
