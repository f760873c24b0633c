"""Edit history ledger — ordered record of engine events for audit/undo UI."""
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

logger = logging.getLogger(__name__)


class HistoryKind(Enum):
    TRIGGER_FIRED = "trigger_fired"
    SUGGESTION_SHOWN = "suggestion_shown"
    SUGGESTION_ACCEPTED = "suggestion_accepted"
    SUGGESTION_DISMISSED = "suggestion_dismissed"
    REPLACEMENT_APPLIED = "replacement_applied"
    REPLACEMENT_REJECTED = "replacement_rejected"
    UNDO = "undo"
    REDO = "redo"


@dataclass
class HistoryEntry:
    timestamp: float
    kind: HistoryKind
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "kind": self.kind.value, "payload": self.payload}


class EditHistory:
    """Bounded ledger. The engine only appends; consumers read."""

    def __init__(self, max_entries: int = 1000):
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)

    def record(self, kind: HistoryKind, **payload) -> HistoryEntry:
        entry = HistoryEntry(timestamp=time.time(), kind=kind, payload=payload)
        self._entries.append(entry)
        logger.debug("History: %s %s", kind.value, payload)
        return entry

    def entries(self, kind: Optional[HistoryKind] = None) -> List[HistoryEntry]:
        if kind is None:
            return list(self._entries)
        return [e for e in self._entries if e.kind is kind]

    def count(self, kind: HistoryKind) -> int:
        return sum(1 for e in self._entries if e.kind is kind)

    @property
    def last(self) -> Optional[HistoryEntry]:
        if self._entries:
            return self._entries[-1]
        return None

    def clear(self):
        self._entries.clear()

    def to_json(self) -> str:
        return json.dumps([e.to_dict() for e in self._entries], indent=2, ensure_ascii=False)

    @property
    def size(self) -> int:
        return len(self._entries)
