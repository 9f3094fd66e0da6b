import enum
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Iterator, List, Optional


class HistoryEntryType(str, enum.Enum):
    """Direction of a chunk exchanged with the process."""
    IN = "IN"
    OUT = "OUT"
    ERR = "ERR"


@dataclass(frozen=True)
class HistoryEntry:
    data: str
    date: datetime
    type: HistoryEntryType


class HistoryLog:
    """
    Append-only, ordered record of what was exchanged with a process.

    With `max_entries` set the log keeps only the newest entries; the oldest
    ones are discarded on overflow and counted in `dropped`.
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        if max_entries is not None and max_entries <= 0:
            max_entries = None
        self.max_entries = max_entries
        self.dropped = 0
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: HistoryEntry) -> None:
        with self._lock:
            if self.max_entries is not None and len(self._entries) == self.max_entries:
                self.dropped += 1
            self._entries.append(entry)

    def dump(self) -> List[HistoryEntry]:
        """Returns a snapshot of the entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.dump())
