import os
import queue
import shlex
import logging
import threading
import subprocess
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, Union

import psutil
from pydantic import ValidationError as PydanticValidationError

from tuizer.local.config import effective_settings as config
from tuizer.command.bridge import StreamBridge
from tuizer.command.descriptor import (CommandDescriptor, CommandParameter, ParameterInput,
                                       RunCommandStreams, parameters_adapter)
from tuizer.command.errors import CommandStateError, ProcessError, ValidationError
from tuizer.command.events import DataReceived, Errored, EventHub, Exited, LifecycleEvent, Listener
from tuizer.command.history import HistoryEntry, HistoryLog
from tuizer.command.parameters import pending_inputs, resolve_command_parameters
from tuizer.command.status import CommandStatus, split_returncode, status_from_exit

log = logging.getLogger(__name__)


def generate_alias() -> str:
    """Returns a unique alias for commands declared without one."""
    return f"command-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class RunAs:
    """The OS identity a command's process runs with."""
    uid: int
    gid: int
    username: Optional[str] = None

    @classmethod
    def current(cls) -> "RunAs":
        """The identity of the calling process."""
        proc = psutil.Process()
        return cls(uid=proc.uids().real, gid=proc.gids().real, username=proc.username())


class Command:
    """
    Supervises one OS process for its whole lifetime.

    The command is created from a descriptor and the streams it is bridged to,
    and executed at most once with `run()`. From then on the process is observed
    asynchronously: the stream relays and the exit watcher only post events to a
    queue, and a single event-loop thread applies them to `status`, `exit_code`
    and the history before handing them to the subscribed listeners.
    """

    def __init__(
        self,
        command_descriptor: Union[CommandDescriptor, Mapping[str, Any]],
        streams: Union[RunCommandStreams, Mapping[str, Any]],
        run_as: Optional[RunAs] = None,
        cwd: Optional[Union[str, Path]] = None,
        history_limit: Optional[int] = None,
    ) -> None:
        """
        :param command_descriptor: The command to run, as a model or a manifest mapping.
        :param streams: The input/output/error channels, borrowed for the process lifetime.
        :param run_as: Identity to spawn the process with. None inherits the caller's.
        :param cwd: Working directory. None uses the current directory at `run()` time.
        :param history_limit: Maximum history entries kept. None uses `HISTORY_MAX_ENTRIES`.
        :raises ValidationError: If the descriptor or the streams are invalid.
        """
        try:
            self.descriptor = CommandDescriptor.model_validate(command_descriptor)
        except PydanticValidationError as e:
            log.error(f"Could not create command instance: invalid command descriptor {command_descriptor!r}")
            raise ValidationError("Could not create command instance: invalid command descriptor",
                                  data=command_descriptor) from e

        try:
            self.streams = RunCommandStreams.model_validate(streams)
        except PydanticValidationError as e:
            log.error(f"Could not create command instance: invalid IO streams {streams!r}")
            raise ValidationError("Could not create command instance: invalid IO streams", data=streams) from e

        self.name_alias: str = self.descriptor.name_alias or generate_alias()
        log.debug(f"Creating command {self.name_alias}")
        self.description: str = self.descriptor.description
        self.command: str = self.descriptor.command
        self.cwd = cwd
        self._run_as = run_as
        self._parameters: List[CommandParameter] = list(self.descriptor.parameters)

        self._status = CommandStatus.NOT_STARTED
        self._pid: Optional[int] = None
        self._exit_code: Optional[int] = None
        self._start_date: Optional[datetime] = None

        if history_limit is None:
            history_limit = config.HISTORY_MAX_ENTRIES
        self._history = HistoryLog(history_limit or None)
        self._hub = EventHub(self.name_alias)
        self._queue: "queue.Queue[LifecycleEvent]" = queue.Queue(maxsize=config.EVENT_QUEUE_SIZE)
        self._process: Optional[subprocess.Popen] = None
        self._handle: Optional[psutil.Process] = None
        self._bridge: Optional[StreamBridge] = None
        self._run_lock = threading.Lock()
        self._exit_seen = threading.Event()
        self._done = threading.Event()

    def __repr__(self) -> str:
        return f"<Command {self.name_alias!r} status={self._status.value} pid={self._pid}>"

    #* --- Lifecycle ---
    def run(self) -> None:
        """
        Spawns the process and returns without waiting for it.

        :raises CommandStateError: If the command was already started.
        :raises ValidationError: If an input parameter has no answer.
        :raises ProcessError: If the OS process could not be spawned.
        """
        with self._run_lock:
            if self._status is not CommandStatus.NOT_STARTED or self._process is not None:
                raise CommandStateError(f"Command '{self.name_alias}' was already started",
                                        data={"status": self._status.value, "pid": self._pid})

            resolved_parameters = resolve_command_parameters(self._parameters)
            args = [self.command, *resolved_parameters]
            log.debug(f"Running command: {shlex.join(args)}")

            self._start_date = datetime.now()
            try:
                self._process = subprocess.Popen(
                    args,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    cwd=str(self.cwd or os.getcwd()),
                    **self._identity_kwargs(),
                )
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                log.error(f"A problem occurred when running the process '{self.command_string}': {e}")
                raise ProcessError("A problem occurred when running the process",
                                   command=self.command_string, pid=self._pid) from e

            self._pid = self._process.pid
            try:
                self._handle = psutil.Process(self._pid)
            except psutil.Error as e:
                log.warning(f"Could not attach to process {self._pid} of '{self.name_alias}'; stop/kill are disabled: {e}")
            # Last write from the caller's thread; the event loop owns the state from here on.
            self._status = CommandStatus.RUNNING

            self._bridge = StreamBridge(self._process, self.streams, self._post, self.name_alias,
                                        read_size=config.PIPE_READ_SIZE)
            threading.Thread(target=self._event_loop, daemon=True, name=f"tuizer-{self.name_alias}-events").start()
            # The relays must exist before the exit watcher joins them.
            self._bridge.start()
            threading.Thread(target=self._watch_exit, daemon=True, name=f"tuizer-{self.name_alias}-exit").start()
            log.info(f"Command '{self.name_alias}' started with PID: {self._pid}")

    def stop(self) -> None:
        """Asks the process to terminate (SIGTERM). The status changes once it exits."""
        log.debug(f"Stopping command {self.name_alias}")
        self._signal("terminate")

    def kill(self) -> None:
        """Forces the process to terminate (SIGKILL). The status changes once it exits."""
        log.debug(f"Killing command {self.name_alias}")
        self._signal("kill")

    def wait(self, timeout: Optional[float] = None) -> Optional[CommandStatus]:
        """
        Blocks until the process exit has been processed.

        :return: The final status, or None if the timeout expired first.
        """
        if self._pid is None:
            return self._status
        if not self._done.wait(timeout):
            return None
        return self._status

    def is_running(self) -> bool:
        return self._status is CommandStatus.RUNNING

    #* --- Accessors ---
    @property
    def status(self) -> CommandStatus:
        return self._status

    @property
    def pid(self) -> Optional[int]:
        return self._pid

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def start_date(self) -> Optional[datetime]:
        """When `run()` was invoked (not when the command was created)."""
        return self._start_date

    @property
    def run_as(self) -> RunAs:
        return self._run_as or RunAs.current()

    @property
    def parameters(self) -> List[CommandParameter]:
        return list(self._parameters)

    @parameters.setter
    def parameters(self, parameters: List[CommandParameter]) -> None:
        """
        Replaces the parameters, typically once the user answered the input ones.
        Only allowed before the command runs.
        """
        if self._status is not CommandStatus.NOT_STARTED or self._process is not None:
            raise CommandStateError(f"Cannot change the parameters of started command '{self.name_alias}'")
        try:
            self._parameters = list(parameters_adapter.validate_python(parameters))
        except PydanticValidationError as e:
            raise ValidationError("Invalid command parameters", data=parameters) from e

    def pending_inputs(self) -> List[ParameterInput]:
        """Input parameters that still need an answer before `run()`."""
        return pending_inputs(self._parameters)

    @property
    def command_string(self) -> str:
        """The command followed by its raw parameters, for display."""
        shown = [param if isinstance(param, str) else param.parameter for param in self._parameters]
        return " ".join([self.command, *shown])

    def get_history_dump(self) -> List[HistoryEntry]:
        """A snapshot of everything exchanged with the process so far."""
        return self._history.dump()

    @property
    def history_dropped(self) -> int:
        return self._history.dropped

    def on_event(self, event_type: Type[LifecycleEvent], listener: Listener) -> Listener:
        """
        Registers a listener for `Exited`, `Errored` or `DataReceived` events.
        Listeners run on the command's event-loop thread, after the state was updated.
        """
        return self._hub.subscribe(event_type, listener)

    def remove_all_event_listeners(self, event_type: Optional[Type[LifecycleEvent]] = None) -> None:
        """Removes the listeners of one event type, or of all of them."""
        self._hub.unsubscribe_all(event_type)

    #* --- Internals ---
    def _identity_kwargs(self) -> Dict[str, Any]:
        if self._run_as is None:
            return {}
        return {"user": self._run_as.uid, "group": self._run_as.gid}

    def _signal(self, action: str) -> None:
        handle = self._handle
        if handle is None:
            log.debug(f"Command '{self.name_alias}' has no live process; nothing to {action}.")
            return
        try:
            getattr(handle, action)()
        except psutil.NoSuchProcess:
            log.debug(f"Process {handle.pid} of '{self.name_alias}' no longer exists, skipping {action}.")
        except psutil.AccessDenied as e:
            log.error(f"Not allowed to {action} process {handle.pid} of '{self.name_alias}': {e}")

    def _post(self, event: LifecycleEvent) -> None:
        if self._exit_seen.is_set():
            log.debug(f"Dropping {type(event).__name__} received after '{self.name_alias}' exited.")
            return
        self._queue.put(event)

    def _watch_exit(self) -> None:
        """Target function of the exit watcher thread."""
        returncode = self._process.wait()
        # Make sure every output chunk is queued before the exit.
        if not self._bridge.join_output(timeout=config.OUTPUT_DRAIN_TIMEOUT):
            log.warning(f"Output pipes of '{self.name_alias}' are still open after exit "
                        f"(inherited by a child process?); later output is not recorded.")
        code, sig = split_returncode(returncode)
        self._queue.put(Exited(code, sig))

    def _event_loop(self) -> None:
        """Target function of the event-loop thread: the only writer of the command state."""
        while True:
            event = self._queue.get()
            try:
                self._apply(event)
            except Exception as e:
                log.error(f"Command '{self.name_alias}' failed to apply {event!r}: {e}", exc_info=True)
            if isinstance(event, Exited):
                self._exit_seen.set()
                self._release()
            self._hub.publish(event)
            if isinstance(event, Exited):
                break
        self._done.set()

    def _apply(self, event: LifecycleEvent) -> None:
        if isinstance(event, DataReceived):
            self._history.append(HistoryEntry(data=event.text, date=event.date, type=event.channel))

        elif isinstance(event, Errored):
            log.error(f"Command {self.name_alias} stopped: {event.cause}")
            if self._status is CommandStatus.RUNNING:
                self._status = CommandStatus.STOPPED

        elif isinstance(event, Exited):
            self._exit_code = event.code
            if self._status is CommandStatus.RUNNING:
                self._status = status_from_exit(event.code, event.signal)
            by_signal = f" by signal {event.signal}" if event.signal is not None else ""
            log.debug(f'Command "{self.name_alias}" is exiting{by_signal} with code {event.code}')
            log.info(f"Command '{self.name_alias}' ended with status {self._status.value}")

    def _release(self) -> None:
        """
        Lets go of the process handle and the input relay once the process is gone.
        The output relays close their pipes themselves when they reach EOF.
        """
        if self._bridge is not None:
            self._bridge.detach()
        self._handle = None
        self._process = None
