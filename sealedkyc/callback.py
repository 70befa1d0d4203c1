"""
Callback verifier.

Validates an oracle response against the pending DecryptionContext it
answers. The checks run in a fixed order and the first failure aborts
the call with nothing written:

1. Replay guard      context must exist and still be CREATED
2. State commitment  recomputed from the context's bound (batch, user)
                     and compared with the one recorded at request time
3. Proof             oracle.verify(correlation_id, cleartexts, proof)
4. Decode            exactly one uint256, the disclosed age
5. Finalize          CREATED -> PROCESSED, record the value

A response that fails 2-4 leaves the context CREATED, so a later,
legitimate response for the same correlation id can still complete it.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .coordinator import DecryptionContext, DecryptionRequestCoordinator, DecryptionState
from .errors import ErrorCode, IntegrityError
from .hashing import commitments_equal
from .oracle import decode_uint256s

DISCLOSED_VALUE_COUNT = 1


@dataclass(frozen=True)
class Disclosure:
    """The single proven disclosure produced by a valid callback."""
    correlation_id: int
    batch_id: int
    user: str
    value: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "batch_id": self.batch_id,
            "user": self.user,
            "value": self.value,
        }


class CallbackVerifier:
    """Resolves oracle responses against recorded decryption contexts."""

    def __init__(self, coordinator: DecryptionRequestCoordinator):
        self._coordinator = coordinator

    def on_oracle_response(self, correlation_id: int, cleartexts: bytes, proof: bytes) -> Disclosure:
        context = self._require_pending(correlation_id)
        self._check_commitment(context)

        if not self._coordinator.oracle.verify(correlation_id, cleartexts, proof):
            raise IntegrityError(ErrorCode.INVALID_PROOF, "oracle proof did not verify",
                                 correlation_id=correlation_id)

        try:
            (value,) = decode_uint256s(cleartexts, DISCLOSED_VALUE_COUNT)
        except ValueError as e:
            raise IntegrityError(ErrorCode.MALFORMED_CLEARTEXT, str(e), correlation_id=correlation_id) from e

        context = self._coordinator.finalize(correlation_id, value)
        return Disclosure(
            correlation_id=correlation_id,
            batch_id=context.batch_id,
            user=context.user,
            value=value,
        )

    def _require_pending(self, correlation_id: int) -> DecryptionContext:
        context = self._coordinator.get_context(correlation_id)
        if context is None or context.state == DecryptionState.PROCESSED:
            raise IntegrityError(
                ErrorCode.REPLAY_DETECTED,
                f"correlation id {correlation_id} is unknown or already processed",
                correlation_id=correlation_id,
            )
        if context.state == DecryptionState.CANCELLED:
            raise IntegrityError(
                ErrorCode.CONTEXT_CANCELLED,
                f"correlation id {correlation_id} was cancelled",
                correlation_id=correlation_id,
            )
        return context

    def _check_commitment(self, context: DecryptionContext) -> None:
        handles = self._coordinator.build_handle_list(context.batch_id, context.user)
        if handles is None:
            raise IntegrityError(
                ErrorCode.STATE_MISMATCH,
                f"record for {context.user!r} in batch {context.batch_id} is gone",
                correlation_id=context.correlation_id,
            )
        recomputed = self._coordinator.compute_commitment(handles)
        if not commitments_equal(recomputed, context.commitment):
            raise IntegrityError(
                ErrorCode.STATE_MISMATCH,
                "state commitment changed since the request was issued",
                correlation_id=context.correlation_id,
                expected=context.commitment,
                observed=recomputed,
            )
