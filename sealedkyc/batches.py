"""
Batch lifecycle manager.

Batches are verification epochs identified by dense, strictly increasing
integers starting at 1. Batch 1 is open from the start. Only the current
batch accepts submissions, and a closed batch never reopens.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Set

from .errors import ErrorCode, LifecycleError

FIRST_BATCH_ID = 1


@dataclass
class Batch:
    """Mutable state of one batch."""
    batch_id: int
    closed: bool = False
    members: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class BatchSnapshot:
    batch_id: int
    closed: bool
    members: FrozenSet[str]
    is_current: bool

    def to_dict(self) -> Dict:
        return {
            "batch_id": self.batch_id,
            "closed": self.closed,
            "is_current": self.is_current,
            "member_count": len(self.members),
        }


class BatchLifecycleManager:
    """Manages the batch lifecycle: open -> collect -> close."""

    def __init__(self):
        self._batches: Dict[int, Batch] = {FIRST_BATCH_ID: Batch(batch_id=FIRST_BATCH_ID)}
        self._current_id = FIRST_BATCH_ID
        self._lock = threading.RLock()

    @property
    def current_batch_id(self) -> int:
        with self._lock:
            return self._current_id

    def open_new_batch(self) -> int:
        """Open the next batch and return its id."""
        with self._lock:
            self._current_id += 1
            self._batches[self._current_id] = Batch(batch_id=self._current_id)
            return self._current_id

    def close_current_batch(self) -> int:
        """Close the current batch and return its id."""
        with self._lock:
            batch = self._batches[self._current_id]
            if batch.closed:
                raise LifecycleError(ErrorCode.BATCH_CLOSED, f"batch {batch.batch_id} is already closed",
                                     batch_id=batch.batch_id)
            batch.closed = True
            return batch.batch_id

    def is_open(self, batch_id: int) -> bool:
        with self._lock:
            return batch_id == self._current_id and not self._batches[batch_id].closed

    def is_closed(self, batch_id: int) -> bool:
        with self._lock:
            batch = self._batches.get(batch_id)
            return batch is not None and batch.closed

    def is_member(self, batch_id: int, user: str) -> bool:
        with self._lock:
            batch = self._batches.get(batch_id)
            return batch is not None and user in batch.members

    def require_known(self, batch_id: int) -> None:
        with self._lock:
            if not (FIRST_BATCH_ID <= batch_id <= self._current_id):
                raise LifecycleError(
                    ErrorCode.INVALID_BATCH,
                    f"batch {batch_id} is outside 1..{self._current_id}",
                    batch_id=batch_id,
                )

    def require_open_current(self) -> int:
        """Return the current batch id, or raise if it is closed."""
        with self._lock:
            if not self.is_open(self._current_id):
                raise LifecycleError(ErrorCode.BATCH_CLOSED, f"batch {self._current_id} is closed",
                                     batch_id=self._current_id)
            return self._current_id

    def require_not_member(self, batch_id: int, user: str) -> None:
        if self.is_member(batch_id, user):
            raise LifecycleError(
                ErrorCode.ALREADY_SUBMITTED,
                f"{user!r} already submitted in batch {batch_id}",
                batch_id=batch_id, user=user,
            )

    def require_member(self, batch_id: int, user: str) -> None:
        if not self.is_member(batch_id, user):
            raise LifecycleError(
                ErrorCode.NOT_ENROLLED,
                f"{user!r} is not enrolled in batch {batch_id}",
                batch_id=batch_id, user=user,
            )

    def add_member(self, batch_id: int, user: str) -> None:
        with self._lock:
            self._batches[batch_id].members.add(user)

    def snapshot(self, batch_id: int) -> BatchSnapshot:
        self.require_known(batch_id)
        with self._lock:
            batch = self._batches[batch_id]
            return BatchSnapshot(
                batch_id=batch.batch_id,
                closed=batch.closed,
                members=frozenset(batch.members),
                is_current=batch.batch_id == self._current_id,
            )
