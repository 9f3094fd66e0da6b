"""
Typed lifecycle events of a supervised process and the small publish/subscribe
hub that delivers them to listeners.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Type, Union

from tuizer.command.history import HistoryEntryType

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exited:
    """The process exited. `signal` is set when it was terminated by a signal."""
    code: Optional[int]
    signal: Optional[int] = None


@dataclass(frozen=True)
class Errored:
    """A runtime error occurred after the process was spawned."""
    cause: BaseException


@dataclass(frozen=True)
class DataReceived:
    """A chunk went through one of the process's standard streams. `text` is its decoded form."""
    channel: HistoryEntryType
    data: bytes
    text: str
    date: datetime = field(default_factory=datetime.now)


LifecycleEvent = Union[Exited, Errored, DataReceived]
EVENT_TYPES = (Exited, Errored, DataReceived)
Listener = Callable[[LifecycleEvent], None]


class EventHub:
    """Registers listeners per event type and delivers published events to them."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: Dict[type, List[Listener]] = {event_type: [] for event_type in EVENT_TYPES}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[LifecycleEvent], listener: Listener) -> Listener:
        if event_type not in self._listeners:
            raise TypeError(f"Unknown lifecycle event type: {event_type!r}")
        with self._lock:
            self._listeners[event_type].append(listener)
        return listener

    def unsubscribe_all(self, event_type: Optional[Type[LifecycleEvent]] = None) -> None:
        with self._lock:
            if event_type is None:
                for listeners in self._listeners.values():
                    listeners.clear()
            elif event_type in self._listeners:
                self._listeners[event_type].clear()
            else:
                raise TypeError(f"Unknown lifecycle event type: {event_type!r}")

    def publish(self, event: LifecycleEvent) -> None:
        """Calls every listener of the event's type. A failing listener is logged and skipped."""
        with self._lock:
            listeners = list(self._listeners.get(type(event), []))
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                log.error(f"Listener {listener!r} of '{self.name}' failed on {type(event).__name__}: {e}", exc_info=True)
