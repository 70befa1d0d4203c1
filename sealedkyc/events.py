"""
Service events.

Every state change emits an event. External displays and indexers
consume them; the service itself never reads them back. Events are
immutable and appended in emission order with a sequence number.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .hashing import event_digest
from .util import utc_now_rfc3339

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Classification of service events."""
    PROVIDER_ADDED = "provider_added"
    PROVIDER_REMOVED = "provider_removed"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    COOLDOWN_CHANGED = "cooldown_changed"
    BATCH_OPENED = "batch_opened"
    BATCH_CLOSED = "batch_closed"
    USER_SUBMITTED = "user_submitted"
    DECRYPTION_REQUESTED = "decryption_requested"
    DECRYPTION_COMPLETED = "decryption_completed"
    DECRYPTION_CANCELLED = "decryption_cancelled"


@dataclass(frozen=True)
class Event:
    """Immutable record of one state change."""
    seq: int
    kind: EventKind
    payload: Dict[str, Any]
    timestamp_utc: str = field(default_factory=utc_now_rfc3339)

    @property
    def digest(self) -> str:
        return event_digest({"seq": self.seq, "kind": self.kind.value, "payload": self.payload})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "timestamp_utc": self.timestamp_utc,
            "digest": self.digest,
        }


class EventSink(ABC):
    """Abstract interface for event delivery."""

    @abstractmethod
    def emit(self, kind: EventKind, **payload: Any) -> Event:
        pass

    @abstractmethod
    def query(
        self,
        kind: Optional[EventKind] = None,
        batch_id: Optional[int] = None,
        since_seq: int = 0,
    ) -> List[Event]:
        pass


class InMemoryEventLog(EventSink):
    """
    In-memory event log with optional subscribers.

    Subscribers are called synchronously, in registration order, after
    the event is appended. A subscriber that raises is logged and skipped;
    the state change that produced the event has already happened.
    """

    def __init__(self, max_events: int = 100000):
        self._events: List[Event] = []
        self._subscribers: List[Callable[[Event], None]] = []
        self._seq = 0
        self._max_events = max_events
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def emit(self, kind: EventKind, **payload: Any) -> Event:
        with self._lock:
            self._seq += 1
            event = Event(seq=self._seq, kind=kind, payload=payload)
            self._events.append(event)
            if len(self._events) > self._max_events:
                self._events = self._events[-self._max_events:]
            subscribers = self._subscribers[:]
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber failed for %s #%d", kind.value, event.seq)
        return event

    def query(
        self,
        kind: Optional[EventKind] = None,
        batch_id: Optional[int] = None,
        since_seq: int = 0,
    ) -> List[Event]:
        with self._lock:
            events = self._events[:]

        events = [e for e in events if e.seq > since_seq]
        if kind:
            events = [e for e in events if e.kind == kind]
        if batch_id is not None:
            events = [e for e in events if e.payload.get("batch_id") == batch_id]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
