import time
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from tuizer.local.config import effective_settings as config
from tuizer.command import Command, CommandDescriptor, RunCommandStreams, TuizerError

log = logging.getLogger(__name__)

DescriptorLike = Union[CommandDescriptor, Mapping[str, Any]]
StreamsFactory = Callable[[DescriptorLike], Union[RunCommandStreams, Mapping[str, Any]]]


class CommandsService:
    """
    Holds the commands of a manifest, one `Command` per descriptor.

    Descriptors that fail validation are logged and skipped so that one broken
    entry does not hide the others.
    """

    def __init__(self, descriptors: Iterable[DescriptorLike], streams_factory: StreamsFactory) -> None:
        self._commands: Dict[str, Command] = {}
        self.skipped: List[DescriptorLike] = []

        for descriptor in descriptors:
            try:
                command = Command(descriptor, streams_factory(descriptor))
            except TuizerError as e:
                log.error(f"Skipping command descriptor: {e}")
                self.skipped.append(descriptor)
                continue

            if command.name_alias in self._commands:
                log.warning(f"Duplicate command alias '{command.name_alias}'. Ignoring the later one.")
                self.skipped.append(descriptor)
                continue
            self._commands[command.name_alias] = command

        log.debug(f"Commands service holds {len(self._commands)} commands ({len(self.skipped)} skipped)")

    @property
    def commands(self) -> List[Command]:
        return list(self._commands.values())

    def get(self, alias: str) -> Command:
        """:raises KeyError: If no command has this alias."""
        try:
            return self._commands[alias]
        except KeyError:
            raise KeyError(f"Unknown command '{alias}'") from None

    def running(self) -> List[Command]:
        return [command for command in self._commands.values() if command.is_running()]

    def stop_all(self, timeout: Optional[float] = None) -> List[Command]:
        """
        Stops every running command: SIGTERM first, SIGKILL for those still
        alive once the timeout expired.

        :param timeout: Seconds to wait before force-killing. Defaults to `GRACEFUL_SHUTDOWN_TIMEOUT`.
        :return: The commands that had to be killed.
        """
        if timeout is None:
            timeout = config.GRACEFUL_SHUTDOWN_TIMEOUT

        to_stop = [command for command in self._commands.values() if command.pid is not None and command.wait(0) is None]
        if not to_stop:
            log.info("No running commands found to stop.")
            return []

        log.info(f"Initiating graceful shutdown for {len(to_stop)} commands...")
        for command in to_stop:
            command.stop()

        deadline = time.monotonic() + timeout
        alive = [command for command in to_stop if command.wait(max(0.0, deadline - time.monotonic())) is None]

        if alive:
            log.warning(f"{len(alive)} commands did not terminate gracefully. Forcing shutdown...")
            for command in alive:
                log.warning(f"Killing stubborn command '{command.name_alias}' (PID {command.pid}).")
                command.kill()
            for command in alive:
                command.wait(timeout)
        return alive
