from typing import Any, Optional


class TuizerError(Exception):
    """Base class for every error raised by tuizer. `data` holds the diagnostic payload."""

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def __str__(self) -> str:
        if self.data is None:
            return self.message
        return f"{self.message} ({self.data})"


class ValidationError(TuizerError):
    """A descriptor, stream bundle or parameter failed validation."""


class CommandStateError(TuizerError):
    """The operation is not allowed in the command's current status."""


class ManifestError(TuizerError):
    """A manifest could not be found, read or validated."""


class ProcessError(TuizerError):
    """The OS process could not be spawned."""

    def __init__(self, message: str, command: str, pid: Optional[int] = None) -> None:
        super().__init__(message, data={"pid": pid, "command": command})
        self.command = command
        self.pid = pid
