import sys
import logging
from pathlib import Path

import tuizer.local.console as console
from tuizer.local import effective_settings as config
from tuizer.log.setup import setup_logging
from tuizer.command import TuizerError

log = logging.getLogger("console")


def main() -> None:
    """The entry point of the tuizer console: `tuizer [manifest]`."""
    setup_logging(logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO)

    print("--- tuizer ---")
    print("Type 'help' for a list of commands.")

    # A manifest given on the command line skips picking one.
    if len(sys.argv) > 1:
        manifest_path = Path(sys.argv[1]).expanduser()
        try:
            manifest = console.state.picker.load_manifest(manifest_path)
        except TuizerError as e:
            log.error(f"{e}. Exiting.")
            sys.exit(1)
        console.load_manifest(manifest.name or manifest_path.stem, manifest.commands)
    else:
        console.execute_command("manifests", [])

    while True:
        try:
            command_line = input("> ").strip().split()
            if not command_line:
                continue

            command, args = command_line[0].lower(), command_line[1:]
            log.debug(f"Received command: {command}, args: {args}")

            if console.execute_command(command, args):
                break

        except (KeyboardInterrupt, EOFError):
            log.warning("\nExiting console. Stopping running commands...")
            console.state.shutdown()
            break
        except Exception as e:
            log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)

if __name__ == "__main__":
    main()
    print("Exiting tuizer. See you next time!")
