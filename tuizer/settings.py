"""
This module contains the configuration defaults for tuizer.
It defines paths, supervisor tuning knobs and logging settings. Every value
can be overridden through a `TUIZER_*` environment variable or a `.env` file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Core Paths ---
HOME_DIR = pathlib.Path(os.getenv("HOME") or pathlib.Path.home())
MANIFESTS_DIR = pathlib.Path(os.getenv("TUIZER_MANIFESTS_DIR", str(HOME_DIR / ".tuizer")))
STATE_DIR = pathlib.Path(os.getenv("TUIZER_STATE_DIR", str(HOME_DIR / ".local" / "state" / "tuizer")))
LOGS_DIR = STATE_DIR / "logs"

#* --- Application File Paths ---
LOG_DB_PATH = LOGS_DIR / "tuizer_logs.db"
OVERRIDES_JSON_PATH = STATE_DIR / "overrides.json"

#* --- Manifest Settings ---
MANIFEST_SUFFIXES = (".json", ".yaml", ".yml")

#* --- Supervisor Settings ---
HISTORY_MAX_ENTRIES = int(os.getenv("TUIZER_HISTORY_MAX_ENTRIES", "0"))  # 0 keeps everything
PIPE_READ_SIZE = int(os.getenv("TUIZER_PIPE_READ_SIZE", "4096"))         # bytes per relayed chunk
EVENT_QUEUE_SIZE = int(os.getenv("TUIZER_EVENT_QUEUE_SIZE", "1024"))     # relays block when full
OUTPUT_DRAIN_TIMEOUT = 2       # seconds to wait for stdout/stderr EOF after exit
GRACEFUL_SHUTDOWN_TIMEOUT = 5  # seconds before force-killing

#* --- Logging Settings ---
LOG_DB_ENABLED = _env_flag("TUIZER_LOG_DB_ENABLED", "True")
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
LOG_HISTORY_COUNT = 50  # records shown by the 'logs' console command

#* --- Application variables ---
VERBOSE_LOGGING = _env_flag("TUIZER_VERBOSE", "False")

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config' command) ---
MODIFIABLE_SETTINGS = {
    # Supervisor
    "HISTORY_MAX_ENTRIES", "PIPE_READ_SIZE", "EVENT_QUEUE_SIZE",
    "OUTPUT_DRAIN_TIMEOUT", "GRACEFUL_SHUTDOWN_TIMEOUT",
    # Logging
    "LOG_DB_ENABLED", "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL", "LOG_HISTORY_COUNT",
}
