"""
Decryption request coordinator.

Turns a provider's request to disclose a user's age into an oracle
request:

1. Build the ordered ciphertext handle list for (batch_id, user)
2. Commit to (handle list, service identity)
3. Hand the list to the oracle and receive a correlation id
4. Record a DecryptionContext bound to (batch_id, user) under that id

The handle list is built by one function, used both here and by the
callback verifier, so that the commitment recomputed when the oracle
answers is derived exactly the way the recorded one was.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .access import AccessControlGate
from .batches import BatchLifecycleManager
from .cooldown import CooldownEnforcer
from .errors import ErrorCode, IntegrityError
from .handles import EncryptedHandle
from .hashing import state_commitment
from .oracle import CallbackTarget, DecryptionOracle
from .records import EncryptedRecordStore


class DecryptionState(str, Enum):
    """Lifecycle of a pending decryption."""
    CREATED = "CREATED"        # Waiting for the oracle
    PROCESSED = "PROCESSED"    # Terminal: disclosed
    CANCELLED = "CANCELLED"    # Terminal: withdrawn by the owner


@dataclass
class DecryptionContext:
    """Pending or finished decryption, keyed by the oracle's correlation id."""
    correlation_id: int
    batch_id: int
    user: str
    requested_by: str
    commitment: str
    created_at: float
    state: DecryptionState = DecryptionState.CREATED
    disclosed_value: Optional[int] = None

    @property
    def processed(self) -> bool:
        return self.state == DecryptionState.PROCESSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "batch_id": self.batch_id,
            "user": self.user,
            "requested_by": self.requested_by,
            "commitment": self.commitment,
            "created_at": self.created_at,
            "state": self.state.value,
            "processed": self.processed,
            "disclosed_value": self.disclosed_value,
        }


class DecryptionRequestCoordinator:
    """Issues oracle requests and tracks their contexts."""

    def __init__(
        self,
        gate: AccessControlGate,
        cooldowns: CooldownEnforcer,
        batches: BatchLifecycleManager,
        records: EncryptedRecordStore,
        oracle: DecryptionOracle,
        service_identity: str,
    ):
        self._gate = gate
        self._cooldowns = cooldowns
        self._batches = batches
        self._records = records
        self._oracle = oracle
        self._service_identity = service_identity
        self._contexts: Dict[int, DecryptionContext] = {}
        self._lock = threading.RLock()

    @property
    def service_identity(self) -> str:
        return self._service_identity

    @property
    def oracle(self) -> DecryptionOracle:
        return self._oracle

    # ------------------------------------------------------------------
    # Handle list and commitment
    # ------------------------------------------------------------------

    def build_handle_list(self, batch_id: int, user: str) -> Optional[List[EncryptedHandle]]:
        """
        Ordered handles disclosed for (batch_id, user).

        Only the age handle is disclosed. Returns None if no record exists.
        """
        record = self._records.get(batch_id, user)
        if record is None:
            return None
        return [record.age_handle]

    def compute_commitment(self, handles: List[EncryptedHandle]) -> str:
        return state_commitment(handles, self._service_identity)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_verification(
        self,
        provider: str,
        batch_id: int,
        user: str,
        now: float,
        callback_target: CallbackTarget,
    ) -> DecryptionContext:
        """
        Request disclosure of the user's age in batch_id.

        Preconditions, in order: provider role, not paused, request
        cooldown elapsed for the provider, 1 <= batch_id <= current,
        user enrolled in batch_id.

        The oracle is called before any local state is written; if it
        raises, nothing is recorded.
        """
        self._gate.require_provider(provider)
        self._gate.require_not_paused()
        self._cooldowns.check_request_cooldown(provider, now)
        self._batches.require_known(batch_id)
        self._batches.require_member(batch_id, user)

        with self._lock:
            handles = self.build_handle_list(batch_id, user)
            if handles is None:
                raise IntegrityError(ErrorCode.STATE_MISMATCH, f"no record for {user!r} in batch {batch_id}",
                                     batch_id=batch_id, user=user)
            commitment = self.compute_commitment(handles)

            correlation_id = self._oracle.request(handles, callback_target)
            if correlation_id in self._contexts:
                raise IntegrityError(
                    ErrorCode.DUPLICATE_CORRELATION,
                    f"oracle reissued correlation id {correlation_id}",
                    correlation_id=correlation_id,
                )

            context = DecryptionContext(
                correlation_id=correlation_id,
                batch_id=batch_id,
                user=user,
                requested_by=provider,
                commitment=commitment,
                created_at=now,
            )
            self._contexts[correlation_id] = context
            self._cooldowns.record_request(provider, now)
            return context

    # ------------------------------------------------------------------
    # Context access
    # ------------------------------------------------------------------

    def get_context(self, correlation_id: int) -> Optional[DecryptionContext]:
        with self._lock:
            return self._contexts.get(correlation_id)

    def pending(self) -> List[DecryptionContext]:
        with self._lock:
            return [
                c for _, c in sorted(self._contexts.items())
                if c.state == DecryptionState.CREATED
            ]

    def finalize(self, correlation_id: int, value: int) -> DecryptionContext:
        """
        Move a context CREATED -> PROCESSED and record the disclosed value.

        The state is re-checked under the lock, so of several concurrent
        callers exactly one succeeds.

        Raises:
            IntegrityError: REPLAY_DETECTED if the context is unknown or
                no longer CREATED
        """
        with self._lock:
            context = self._contexts.get(correlation_id)
            if context is None or context.state != DecryptionState.CREATED:
                raise IntegrityError(
                    ErrorCode.REPLAY_DETECTED,
                    f"correlation id {correlation_id} is unknown or already resolved",
                    correlation_id=correlation_id,
                )
            context.state = DecryptionState.PROCESSED
            context.disclosed_value = value
            return context

    def cancel(self, correlation_id: int) -> DecryptionContext:
        """Withdraw a pending context. Terminal; the oracle's answer will be refused."""
        with self._lock:
            context = self._contexts.get(correlation_id)
            if context is None or context.state != DecryptionState.CREATED:
                raise IntegrityError(
                    ErrorCode.REPLAY_DETECTED,
                    f"no pending decryption for correlation id {correlation_id}",
                    correlation_id=correlation_id,
                )
            context.state = DecryptionState.CANCELLED
            return context
