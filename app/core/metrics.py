"""Process-wide connection counters shared by every request handler."""
import enum
from dataclasses import dataclass
from threading import Lock


class StatKind(enum.Enum):
    BAD_CONNECTION = "badconn"
    OPEN = "open"
    CLOSE = "close"
    REFUSE = "refuse"
    DENIED = "denied"


class InvalidUpdateKind(ValueError):
    pass


@dataclass(frozen=True)
class CounterSet:
    requests: int = 0
    bad_connections: int = 0
    open_connections: int = 0
    refused_connections: int = 0
    denied_connections: int = 0


class CounterStore:
    """All five counters sit behind one lock so an OPEN event is never seen half applied."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._bad_connections = 0
        self._open_connections = 0
        self._refused_connections = 0
        self._denied_connections = 0

    def update(self, kind: StatKind) -> None:
        if not isinstance(kind, StatKind):
            raise InvalidUpdateKind(f"Unknown counter event: {kind!r}")
        with self._lock:
            if kind is StatKind.BAD_CONNECTION:
                self._bad_connections += 1
            elif kind is StatKind.OPEN:
                self._open_connections += 1
                self._requests += 1
            elif kind is StatKind.CLOSE:
                self._open_connections -= 1
            elif kind is StatKind.REFUSE:
                self._refused_connections += 1
            elif kind is StatKind.DENIED:
                self._denied_connections += 1

    def snapshot(self) -> CounterSet:
        with self._lock:
            return CounterSet(
                requests=self._requests,
                bad_connections=self._bad_connections,
                open_connections=self._open_connections,
                refused_connections=self._refused_connections,
                denied_connections=self._denied_connections,
            )
