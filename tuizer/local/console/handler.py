import os
import sqlite3
import sys
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional

from tuizer.local.config import effective_settings as config
from tuizer.local.manifest import ManifestPicker
from tuizer.local.service import CommandsService
from tuizer.log.database import LogDBManager
from tuizer.log.handler import SQLiteHandler
from tuizer.command import Command, RunCommandStreams, TuizerError

log = logging.getLogger(__name__)


class ConsoleState:
    """What the console currently works with: the loaded manifest, its commands and their input pipes."""

    def __init__(self) -> None:
        self.picker = ManifestPicker()
        self.manifest_name: Optional[str] = None
        self.service: Optional[CommandsService] = None
        self.input_writers: Dict[str, BinaryIO] = {}

    def streams_for(self, _descriptor: Any, writers: Dict[int, BinaryIO]) -> RunCommandStreams:
        """Gives a command a pipe as input channel; the console keeps the writing end."""
        read_fd, write_fd = os.pipe()
        reader = open(read_fd, "rb")
        writers[id(reader)] = open(write_fd, "wb", buffering=0)
        return RunCommandStreams(read_input=reader, write_output=sys.stdout, write_error=sys.stderr)

    def load(self, name: str, descriptors: List[Mapping[str, Any]]) -> None:
        self.shutdown()
        writers: Dict[int, BinaryIO] = {}
        self.service = CommandsService(descriptors, lambda descriptor: self.streams_for(descriptor, writers))
        self.manifest_name = name
        for command in self.service.commands:
            self.input_writers[command.name_alias] = writers.pop(id(command.streams.read_input))
        for writer in writers.values():  # left over by skipped descriptors
            writer.close()

    def shutdown(self) -> None:
        if self.service is not None:
            self.service.stop_all()
        for writer in self.input_writers.values():
            if not writer.closed:
                writer.close()
        self.input_writers.clear()
        self.service = None


state = ConsoleState()


def _get_command(args: List[str]) -> Optional[Command]:
    if state.service is None:
        print("No manifest loaded. Use 'manifests' and 'load <index|path>' first.")
        return None
    if not args:
        print("Missing command alias. Use 'commands' to list them.")
        return None
    try:
        return state.service.get(args[0])
    except KeyError as e:
        print(e.args[0])
        return None


def handle_manifests_command() -> None:
    """Lists the available manifests."""
    try:
        manifests = state.picker.list_manifests()
    except TuizerError as e:
        print(e.message)
        return
    print("\n--- Available Manifests ---")
    for index, path in enumerate(manifests):
        print(f"  [{index}] {path.name}")
    print("Use 'load <index|path>' to load one.\n")


def handle_load_command(args: List[str]) -> None:
    """Loads a manifest by index (as listed by 'manifests') or by path."""
    if not args:
        print("Usage: load <index|path>")
        return
    target = args[0]
    try:
        if target.isdigit():
            path = state.picker.list_manifests()[int(target)]
        else:
            path = Path(target).expanduser()
        manifest = state.picker.load_manifest(path)
    except IndexError:
        print(f"No manifest with index {target}.")
        return
    except TuizerError as e:
        print(e.message)
        return

    load_manifest(manifest.name or path.stem, manifest.commands)


def load_manifest(name: str, descriptors: List[Mapping[str, Any]]) -> None:
    state.load(name, descriptors)
    print(f"Loaded '{name}': {len(state.service.commands)} commands, {len(state.service.skipped)} skipped.")


def handle_commands_command() -> None:
    """Displays the commands of the loaded manifest and their status."""
    if state.service is None:
        print("No manifest loaded.")
        return
    print(f"\n--- Commands of '{state.manifest_name}' ---")
    print(f"{'ALIAS':<24}{'STATUS':<13}{'PID':<9}{'EXIT':<6}COMMAND")
    for command in state.service.commands:
        pid = command.pid if command.pid is not None else '-'
        exit_code = command.exit_code if command.exit_code is not None else '-'
        print(f"{command.name_alias:<24}{command.status.value:<13}{str(pid):<9}{str(exit_code):<6}{command.command_string}")
        if command.description:
            print(f"{'':<24}{command.description}")
    print()


def handle_run_command(args: List[str]) -> None:
    """Asks for the missing answers and runs the command."""
    command = _get_command(args)
    if command is None:
        return

    pending = command.pending_inputs()
    if pending:
        answers = {id(param): param.answered(input(f"{param.parameter} > ")) for param in pending}
        command.parameters = [answers.get(id(param), param) for param in command.parameters]

    try:
        command.run()
    except TuizerError as e:
        log.error(f"Could not run '{command.name_alias}': {e}")


def handle_send_command(args: List[str]) -> None:
    """Writes a line to the input channel of a command."""
    command = _get_command(args)
    if command is None:
        return
    writer = state.input_writers.get(command.name_alias)
    if writer is None or writer.closed:
        print(f"Input of '{command.name_alias}' is closed.")
        return
    try:
        writer.write((" ".join(args[1:]) + "\n").encode("utf-8"))
    except OSError as e:
        log.error(f"Failed to send input to '{command.name_alias}': {e}")


def handle_eof_command(args: List[str]) -> None:
    """Closes the input channel of a command."""
    command = _get_command(args)
    if command is None:
        return
    writer = state.input_writers.get(command.name_alias)
    if writer is not None and not writer.closed:
        writer.close()
        print(f"Input of '{command.name_alias}' closed.")


def handle_stop_command(args: List[str]) -> None:
    command = _get_command(args)
    if command is not None:
        command.stop()


def handle_kill_command(args: List[str]) -> None:
    command = _get_command(args)
    if command is not None:
        command.kill()


def handle_history_command(args: List[str]) -> None:
    """Prints what was exchanged with a command."""
    command = _get_command(args)
    if command is None:
        return
    entries = command.get_history_dump()
    print(f"\n--- History of '{command.name_alias}' ({len(entries)} entries) ---")
    if command.history_dropped:
        print(f"  ({command.history_dropped} older entries discarded)")
    for entry in entries:
        print(f"  {entry.date:%H:%M:%S.%f} {entry.type.value:<3} {entry.data.rstrip()}")
    print()


def handle_logs_command(args: List[str]) -> None:
    """Prints the newest records of the log database, optionally only those of one command."""
    if not config.LOG_DB_ENABLED:
        print("The log database is disabled (LOG_DB_ENABLED).")
        return

    # Buffered records are written first so the listing is current.
    for handler in logging.getLogger().handlers:
        if isinstance(handler, SQLiteHandler):
            handler.flush()

    alias = args[0] if args else None
    log_db = LogDBManager(config.LOG_DB_PATH)
    try:
        records = log_db.fetch_recent(config.LOG_HISTORY_COUNT, command=alias)
    except sqlite3.Error as e:
        log.error(f"Failed to fetch log history: {e}")
        return

    scope = f"'{alias}'" if alias else "all commands"
    print(f"\n--- Last {len(records)} log entries of {scope} ---")
    for record in reversed(records):
        stamp = datetime.fromtimestamp(record["timestamp"])
        print(f"  {stamp:%H:%M:%S} {record['level']:<8} [{record['logger']}] {record['message']}")
    print()


def display_status() -> None:
    """Displays a summary of the running commands."""
    if state.service is None:
        print("No manifest loaded.")
        return
    running = state.service.running()
    print(f"{len(running)} of {len(state.service.commands)} commands running.")
    for command in running:
        print(f"  - {command.name_alias} (PID: {command.pid}, started {command.start_date:%H:%M:%S})")


def handle_config_command(args: List[str]) -> None:
    """Shows the modifiable settings or changes one with 'config set <KEY> <VALUE>'."""
    if len(args) >= 3 and args[0] == "set":
        _, message = config.update_setting(args[1], args[2])
        print(message)
        return

    print("\n--- Current Configuration ---")
    for key, value in config.modifiable().items():
        print(f"  {key} = {value}")
    print("Use 'config set <KEY> <VALUE>' to change a setting.\n")


def toggle_verbose_logging() -> None:
    """Switches the console log level between INFO and DEBUG."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO
    for handler in logging.getLogger().handlers:
        if getattr(handler, "stream", None) in (sys.stdout, sys.stderr):
            handler.setLevel(new_level)
    print(f"Verbose logging {'enabled' if config.VERBOSE_LOGGING else 'disabled'}.")


def print_help() -> None:
    """Prints the available console commands."""
    print("""
--- Console Commands ---
  manifests              List the manifests in the manifests directory.
  load <index|path>      Load a manifest.
  commands               List the commands of the loaded manifest.
  run <alias>            Run a command, asking for the missing parameters.
  send <alias> <text>    Write a line to the command's input.
  eof <alias>            Close the command's input.
  stop <alias>           Terminate a command (SIGTERM).
  kill <alias>           Kill a command (SIGKILL).
  status                 Show the running commands.
  history <alias>        Show what was exchanged with a command.
  logs [alias]           Show the newest log records, of one command or all.
  config [set K V]       Show or change settings.
  verbose                Toggle verbose logging.
  help                   Show this help.
  exit                   Stop all commands and quit.
""")
