import sys
import logging

from tuizer.local.config import effective_settings as config
from tuizer.log.handler import SQLiteHandler


class SubprocessLogFilter(logging.Filter):
    """
    Keeps the records of relayed process output ('proc.<alias>' loggers) off the
    console, where the output is already written by the stream bridge.
    """
    def filter(self, record):
        return not record.name.startswith('proc.')


class MainFormatter(logging.Formatter):
    """A formatter printing regular records with context and process output raw."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record):
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger.
    This sets up the console handler and, when enabled, the SQLite handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    console_handler.addFilter(SubprocessLogFilter())
    root_logger.addHandler(console_handler)

    # --- SQLite Handler (all levels, process output included) ---
    if config.LOG_DB_ENABLED:
        try:
            sqlite_handler = SQLiteHandler(
                db_path=config.LOG_DB_PATH,
                buffer_size=config.LOG_BUFFER_SIZE,
                flush_interval=config.LOG_BUFFER_FLUSH_INTERVAL,
            )
            sqlite_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(sqlite_handler)
        except Exception as e:
            root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")
