import sys
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from tuizer.log.database import LogDBManager


class SQLiteHandler(logging.Handler):
    """
    A logging handler that writes records to a SQLite database in batches,
    flushing from a background thread.
    """

    def __init__(self, db_path: Path, buffer_size: int = 100, flush_interval: float = 10) -> None:
        """
        :param db_path: The path to the SQLite database file.
        :param buffer_size: Number of buffered records that triggers an immediate flush.
        :param flush_interval: Seconds between periodic flushes.
        """
        super().__init__()
        self.buffer_size = buffer_size
        self.flush_interval = flush_interval
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()
        self.stop_event = threading.Event()
        self.logDB = LogDBManager(db_path)
        self.logDB.initialize_database()
        self.flush_thread: Optional[threading.Thread] = threading.Thread(
            target=self._periodic_flush, daemon=True, name="SQLiteFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        """Adds the record to the buffer, flushing when the buffer is full."""
        # Records of relayed process output come from the 'proc.<alias>' loggers.
        command = record.name.split('.', 1)[1] if record.name.startswith('proc.') else None
        log_entry = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "command": command,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "message": record.getMessage(),
        }
        with self.buffer_lock:
            self.log_buffer.append(log_entry)
            if len(self.log_buffer) < self.buffer_size:
                return
            entries_to_write = self._take_buffer()
        self._write(entries_to_write)

    def _take_buffer(self) -> List[Dict[str, Any]]:
        entries = list(self.log_buffer)
        self.log_buffer.clear()
        return entries

    def _write(self, entries: List[Dict[str, Any]]) -> None:
        try:
            self.logDB.insert_log_batch(entries)
        except sqlite3.Error as e:
            # Logging from here would recurse into this handler.
            print(f"Error writing logs to DB: {e}. Log entries: {len(entries)}", file=sys.stderr)

    def flush(self) -> None:
        """Writes the buffered records."""
        with self.buffer_lock:
            entries_to_write = self._take_buffer()
        self._write(entries_to_write)

    def close(self) -> None:
        """Stops the flush thread and writes what is left in the buffer."""
        self.stop_event.set()
        if self.flush_thread and self.flush_thread.is_alive():
            self.flush_thread.join()
        self.flush()
        super().close()
