import logging
from typing import List

from tuizer.local.console.handler import (
    display_status, handle_commands_command, handle_config_command, handle_eof_command,
    handle_history_command, handle_kill_command, handle_load_command, handle_logs_command, handle_manifests_command,
    handle_run_command, handle_send_command, handle_stop_command, print_help, state,
    toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'run', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "manifests": handle_manifests_command,
        "load": lambda: handle_load_command(args),
        "commands": handle_commands_command,
        "run": lambda: handle_run_command(args),
        "send": lambda: handle_send_command(args),
        "eof": lambda: handle_eof_command(args),
        "stop": lambda: handle_stop_command(args),
        "kill": lambda: handle_kill_command(args),
        "status": display_status,
        "history": lambda: handle_history_command(args),
        "logs": lambda: handle_logs_command(args),
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command == "exit":
        state.shutdown()
        return True

    if command in command_map:
        command_map[command]()
    else:
        print(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return False
