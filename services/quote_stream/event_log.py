"""
Event Log

Append-only, ordered record of what the client did and saw: connection
lifecycle, inbound frames (verbatim), control messages sent, and warnings.
This is what the presentation layer renders.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Tuple

from shared.utils.logger import get_logger

logger = get_logger(__name__)


class EntryKind(str, Enum):
    """Category of a log entry"""
    LIFECYCLE = "lifecycle"
    INBOUND = "inbound"
    SENT = "sent"
    WARNING = "warning"


@dataclass(frozen=True)
class LogEntry:
    """One immutable line of the event log"""
    position: int
    text: str
    kind: EntryKind = EntryKind.LIFECYCLE
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "kind": self.kind.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


class EventLog:
    """
    Unbounded append-only log.

    Positions start at 0 and increase by one per entry, so a reader can poll
    incrementally with `since(last_seen_position)`.
    """

    def __init__(self):
        self._entries: List[LogEntry] = []

    def append(self, text: str, kind: EntryKind = EntryKind.LIFECYCLE) -> LogEntry:
        entry = LogEntry(position=len(self._entries), text=text, kind=kind)
        self._entries.append(entry)
        logger.debug("event_log_append", position=entry.position, kind=kind.value)
        return entry

    def warn(self, text: str) -> LogEntry:
        return self.append(f"[warn] {text}", EntryKind.WARNING)

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        """Snapshot of every entry so far"""
        return tuple(self._entries)

    def texts(self) -> List[str]:
        return [entry.text for entry in self._entries]

    def since(self, position: int = -1) -> Tuple[LogEntry, ...]:
        """Entries strictly after `position` (-1 returns everything)"""
        return tuple(self._entries[max(position + 1, 0):])

    def count(self, kind: EntryKind) -> int:
        return sum(1 for entry in self._entries if entry.kind is kind)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries)
