"""
Encrypted record store.

Holds one EncryptedRecord per (batch_id, user): the opaque age and
country-code handles submitted by a provider. `submit` is the only
write path. It checks every precondition before touching any state so
that a rejected submission leaves no partial record and no partial
membership behind.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .access import AccessControlGate
from .batches import BatchLifecycleManager
from .cooldown import CooldownEnforcer
from .errors import ErrorCode, IntegrityError
from .handles import EncryptedHandle

RecordKey = Tuple[int, str]


@dataclass(frozen=True)
class EncryptedRecord:
    """Immutable record of one provider submission."""
    batch_id: int
    user: str
    provider: str
    age_handle: EncryptedHandle
    country_handle: EncryptedHandle
    submitted_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "user": self.user,
            "provider": self.provider,
            "age_handle": self.age_handle.as_commitment_bytes().hex(),
            "country_handle": self.country_handle.as_commitment_bytes().hex(),
            "submitted_at": self.submitted_at,
        }


class EncryptedRecordStore:
    """Per-(batch, user) storage of opaque encrypted attribute handles."""

    def __init__(
        self,
        gate: AccessControlGate,
        cooldowns: CooldownEnforcer,
        batches: BatchLifecycleManager,
    ):
        self._gate = gate
        self._cooldowns = cooldowns
        self._batches = batches
        self._records: Dict[RecordKey, EncryptedRecord] = {}
        self._lock = threading.RLock()

    def submit(
        self,
        provider: str,
        user: str,
        age_handle: EncryptedHandle,
        country_handle: EncryptedHandle,
        now: float,
    ) -> EncryptedRecord:
        """
        Store a user's handles in the current batch.

        Preconditions, in order: provider role, not paused, submission
        cooldown elapsed for the user, current batch open, user not yet
        enrolled in it, both handles initialized.

        Returns:
            The stored EncryptedRecord
        """
        self._gate.require_provider(provider)
        self._gate.require_not_paused()
        self._cooldowns.check_submission_cooldown(user, now)

        with self._lock:
            batch_id = self._batches.require_open_current()
            self._batches.require_not_member(batch_id, user)
            for name, handle in (("age", age_handle), ("country", country_handle)):
                if handle is None or not handle.is_initialized():
                    raise IntegrityError(
                        ErrorCode.NOT_INITIALIZED,
                        f"{name} handle is not initialized",
                        field=name,
                    )

            record = EncryptedRecord(
                batch_id=batch_id,
                user=user,
                provider=provider,
                age_handle=age_handle,
                country_handle=country_handle,
                submitted_at=now,
            )
            self._records[(batch_id, user)] = record
            self._batches.add_member(batch_id, user)
            self._cooldowns.record_submission(user, now)
            return record

    def get(self, batch_id: int, user: str) -> Optional[EncryptedRecord]:
        with self._lock:
            return self._records.get((batch_id, user))

    def has_record(self, batch_id: int, user: str) -> bool:
        with self._lock:
            return (batch_id, user) in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
