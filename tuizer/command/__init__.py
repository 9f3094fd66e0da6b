"""
The process supervisor.

A `Command` owns one OS process spawned from a `CommandDescriptor`, bridges its
standard streams to caller-supplied channels, records everything exchanged in
a `HistoryLog` and exposes the lifecycle as a `CommandStatus` state machine.
"""

from .command import Command, RunAs
from .descriptor import CommandDescriptor, ParameterInput, RunCommandStreams
from .errors import CommandStateError, ManifestError, ProcessError, TuizerError, ValidationError
from .events import DataReceived, Errored, Exited
from .history import HistoryEntry, HistoryEntryType, HistoryLog
from .parameters import resolve_command_parameters
from .status import CommandStatus, status_from_exit

__all__ = [
    "Command", "RunAs",
    "CommandDescriptor", "ParameterInput", "RunCommandStreams",
    "TuizerError", "ValidationError", "ProcessError", "CommandStateError", "ManifestError",
    "Exited", "Errored", "DataReceived",
    "HistoryEntry", "HistoryEntryType", "HistoryLog",
    "resolve_command_parameters",
    "CommandStatus", "status_from_exit",
]
