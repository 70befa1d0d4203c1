"""
SealedKYC Service

The one coordinating instance that owns every map: roles, batches,
records, pending decryptions and timestamps. All mutation goes through
it, and each operation runs as a whole under a single re-entrant lock,
so no caller ever observes a half-applied submission, request or
callback.

Usage:
    oracle = LocalDecryptionOracle()
    service = SealedKYCService(owner="owner", oracle=oracle)
    service.add_provider("owner", "provider-1")

    service.submit("provider-1", "alice", oracle.encrypt(25), oracle.encrypt(1))
    correlation_id = service.request_verification("provider-1", 1, "alice")

    # Later, the oracle answers through the callback target:
    oracle.fulfill(correlation_id)   # -> service.on_oracle_response(...)
"""

import dataclasses
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from .access import AccessControlGate
from .batches import BatchLifecycleManager, BatchSnapshot
from .callback import CallbackVerifier, Disclosure
from .clock import Clock, MonotonicClock
from .config import COOLDOWN_SECONDS, SERVICE_IDENTITY
from .coordinator import DecryptionContext, DecryptionRequestCoordinator
from .cooldown import CooldownEnforcer
from .errors import IntegrityError, SealedKYCError
from .events import EventKind, EventSink, InMemoryEventLog
from .handles import EncryptedHandle
from .logging_config import audit_log
from .oracle import DecryptionOracle
from .records import EncryptedRecord, EncryptedRecordStore


class SealedKYCService:
    """Batch lifecycle and asynchronous decryption-oracle protocol."""

    def __init__(
        self,
        owner: str,
        oracle: DecryptionOracle,
        service_identity: str = SERVICE_IDENTITY,
        cooldown_seconds: int = COOLDOWN_SECONDS,
        clock: Optional[Clock] = None,
        events: Optional[EventSink] = None,
    ):
        self._lock = threading.RLock()
        self._clock = clock or MonotonicClock()
        self._events = events if events is not None else InMemoryEventLog()

        self.gate = AccessControlGate(owner)
        self.cooldowns = CooldownEnforcer(cooldown_seconds)
        self.batches = BatchLifecycleManager()
        self.records = EncryptedRecordStore(self.gate, self.cooldowns, self.batches)
        self.coordinator = DecryptionRequestCoordinator(
            self.gate, self.cooldowns, self.batches, self.records, oracle, service_identity,
        )
        self.verifier = CallbackVerifier(self.coordinator)

    @contextmanager
    def _operation(self, name: str, caller: Optional[str] = None) -> Iterator[None]:
        """Run one operation atomically and audit any rejection."""
        with self._lock:
            try:
                yield
            except SealedKYCError as e:
                audit_log.operation_rejected(name, e.to_dict(), caller=caller)
                raise

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------

    def add_provider(self, caller: str, provider: str) -> None:
        with self._operation("add_provider", caller):
            self.gate.add_provider(caller, provider)
            self._events.emit(EventKind.PROVIDER_ADDED, provider=provider)
        audit_log.role_changed(provider, True, caller)

    def remove_provider(self, caller: str, provider: str) -> None:
        with self._operation("remove_provider", caller):
            self.gate.remove_provider(caller, provider)
            self._events.emit(EventKind.PROVIDER_REMOVED, provider=provider)
        audit_log.role_changed(provider, False, caller)

    def pause(self, caller: str) -> None:
        with self._operation("pause", caller):
            self.gate.pause(caller)
            self._events.emit(EventKind.PAUSED, by=caller)
        audit_log.pause_changed(True, caller)

    def unpause(self, caller: str) -> None:
        with self._operation("unpause", caller):
            self.gate.unpause(caller)
            self._events.emit(EventKind.UNPAUSED, by=caller)
        audit_log.pause_changed(False, caller)

    def set_cooldown_seconds(self, caller: str, value: int) -> Tuple[int, int]:
        """Returns (old, new)."""
        with self._operation("set_cooldown_seconds", caller):
            self.gate.require_owner(caller)
            old, new = self.cooldowns.set_cooldown_seconds(value)
            self._events.emit(EventKind.COOLDOWN_CHANGED, old=old, new=new)
        audit_log.cooldown_changed(old, new, caller)
        return old, new

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def open_new_batch(self, caller: str) -> int:
        with self._operation("open_new_batch", caller):
            self.gate.require_owner(caller)
            batch_id = self.batches.open_new_batch()
            self._events.emit(EventKind.BATCH_OPENED, batch_id=batch_id)
        audit_log.batch_transition(batch_id, "opened")
        return batch_id

    def close_current_batch(self, caller: str) -> int:
        with self._operation("close_current_batch", caller):
            self.gate.require_owner(caller)
            batch_id = self.batches.close_current_batch()
            self._events.emit(EventKind.BATCH_CLOSED, batch_id=batch_id)
        audit_log.batch_transition(batch_id, "closed")
        return batch_id

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        provider: str,
        user: str,
        age_handle: EncryptedHandle,
        country_handle: EncryptedHandle,
    ) -> EncryptedRecord:
        with self._operation("submit", provider):
            record = self.records.submit(provider, user, age_handle, country_handle, self._clock.now())
            self._events.emit(EventKind.USER_SUBMITTED, batch_id=record.batch_id, user=user)
        audit_log.submission_accepted(record.batch_id, user, provider)
        return record

    # ------------------------------------------------------------------
    # Decryption protocol
    # ------------------------------------------------------------------

    def request_verification(self, provider: str, batch_id: int, user: str) -> int:
        """
        Ask the oracle to disclose the user's age in batch_id.

        Returns immediately with the oracle's correlation id. The answer
        arrives later through on_oracle_response.
        """
        with self._operation("request_verification", provider):
            context = self.coordinator.request_verification(
                provider, batch_id, user, self._clock.now(), self.on_oracle_response,
            )
            self._events.emit(
                EventKind.DECRYPTION_REQUESTED,
                correlation_id=context.correlation_id,
                batch_id=context.batch_id,
            )
        audit_log.decryption_requested(context.correlation_id, batch_id, provider, context.commitment)
        return context.correlation_id

    def on_oracle_response(self, correlation_id: int, cleartexts: bytes, proof: bytes) -> Disclosure:
        """
        Oracle callback. Not gated by the pause flag.

        Raises:
            IntegrityError: On replay, commitment drift, bad proof or
                malformed cleartexts; the context is left unchanged
        """
        with self._lock:
            try:
                disclosure = self.verifier.on_oracle_response(correlation_id, cleartexts, proof)
            except IntegrityError as e:
                audit_log.security_event(
                    "oracle_callback_rejected",
                    severity="high",
                    correlation_id=correlation_id,
                    code=e.code.value,
                )
                raise
            self._events.emit(
                EventKind.DECRYPTION_COMPLETED,
                correlation_id=disclosure.correlation_id,
                batch_id=disclosure.batch_id,
                value=disclosure.value,
            )
        audit_log.decryption_completed(correlation_id, disclosure.batch_id)
        return disclosure

    def cancel_decryption(self, caller: str, correlation_id: int) -> None:
        """Owner-only withdrawal of a pending decryption."""
        with self._operation("cancel_decryption", caller):
            self.gate.require_owner(caller)
            context = self.coordinator.cancel(correlation_id)
            self._events.emit(
                EventKind.DECRYPTION_CANCELLED,
                correlation_id=correlation_id,
                batch_id=context.batch_id,
            )
        audit_log.decryption_cancelled(correlation_id, context.batch_id, caller)

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self.gate.owner

    @property
    def service_identity(self) -> str:
        return self.coordinator.service_identity

    @property
    def events(self) -> EventSink:
        return self._events

    @property
    def paused(self) -> bool:
        return self.gate.paused

    @property
    def cooldown_seconds(self) -> int:
        return self.cooldowns.cooldown_seconds

    @property
    def current_batch_id(self) -> int:
        return self.batches.current_batch_id

    def is_provider(self, identity: str) -> bool:
        return self.gate.is_provider(identity)

    def providers(self) -> List[str]:
        return self.gate.providers()

    def is_batch_closed(self, batch_id: int) -> bool:
        return self.batches.is_closed(batch_id)

    def batch(self, batch_id: int) -> BatchSnapshot:
        with self._lock:
            return self.batches.snapshot(batch_id)

    def is_member(self, batch_id: int, user: str) -> bool:
        return self.batches.is_member(batch_id, user)

    def has_record(self, batch_id: int, user: str) -> bool:
        return self.records.has_record(batch_id, user)

    def get_record(self, batch_id: int, user: str) -> Optional[EncryptedRecord]:
        return self.records.get(batch_id, user)

    def get_encrypted_handles(self, batch_id: int, user: str) -> Optional[Tuple[EncryptedHandle, EncryptedHandle]]:
        record = self.records.get(batch_id, user)
        if record is None:
            return None
        return record.age_handle, record.country_handle

    def get_decryption_context(self, correlation_id: int) -> Optional[DecryptionContext]:
        """Copy of the context; mutating it does not affect the service."""
        with self._lock:
            context = self.coordinator.get_context(correlation_id)
            return dataclasses.replace(context) if context else None

    def pending_decryptions(self) -> List[DecryptionContext]:
        with self._lock:
            return [dataclasses.replace(c) for c in self.coordinator.pending()]

    def last_submission_time(self, user: str) -> Optional[float]:
        return self.cooldowns.last_submission(user)

    def last_request_time(self, provider: str) -> Optional[float]:
        return self.cooldowns.last_request(provider)
