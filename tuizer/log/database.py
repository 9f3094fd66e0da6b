import sqlite3
import logging
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

log = logging.getLogger(__name__)


class LogDBManager:
    """
    Manages the SQLite database the log records are written to.
    Records coming from a command's streams are stored with the command alias.
    """

    def __init__(self, db_path: Path) -> None:
        """
        :param db_path: The path to the logging SQLite database file.
        """
        self.db_path = Path(db_path)
        self.lock = threading.Lock()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yields a new connection while holding the write lock."""
        with self.lock:
            conn = sqlite3.connect(self.db_path, timeout=10)
            try:
                yield conn
            finally:
                conn.close()

    def initialize_database(self) -> None:
        """Ensures the log table exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._get_connection() as conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        timestamp REAL,
                        level TEXT,
                        logger TEXT,
                        command TEXT,
                        funcName TEXT,
                        lineno INTEGER,
                        message TEXT
                    )
                ''')
                conn.commit()
            log.debug("Log database tables created/verified.")
        except sqlite3.Error as e:
            log.critical(f"Could not create log database tables: {e}", exc_info=True)
            raise

    def insert_log_batch(self, log_entries: List[Dict[str, Any]]) -> None:
        """
        Inserts log entries in a single transaction.

        :param log_entries: Dicts with the keys timestamp, level, logger, command, funcName, lineno, message.
        """
        if not log_entries:
            return

        params = [(
            entry['timestamp'], entry['level'], entry['logger'], entry.get('command'),
            entry['funcName'], entry['lineno'], entry['message'],
        ) for entry in log_entries]
        with self._get_connection() as conn:
            conn.executemany(
                '''INSERT INTO logs (timestamp, level, logger, command, funcName, lineno, message)
                   VALUES (?, ?, ?, ?, ?, ?, ?)''',
                params
            )
            conn.commit()

    def fetch_recent(self, limit: int = 50, command: Optional[str] = None) -> List[sqlite3.Row]:
        """
        Returns the newest log records, newest first.

        :param command: Only return the records of this command's output.
        """
        query = "SELECT timestamp, level, logger, command, message FROM logs"
        params: Tuple[Any, ...] = (limit,)
        if command is not None:
            query += " WHERE command = ?"
            params = (command, limit)
        with self._get_connection() as conn:
            conn.row_factory = sqlite3.Row
            return conn.execute(f"{query} ORDER BY id DESC LIMIT ?", params).fetchall()
