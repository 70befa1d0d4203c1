"""
Decryption oracle capability.

The oracle is an external trusted service. Given an ordered list of
ciphertext handles it returns, asynchronously, the cleartexts together
with a proof of correct decryption. The service talks to it only
through two operations:

    request(handles, callback_target) -> correlation_id
    verify(correlation_id, cleartexts, proof) -> bool

`request` must return immediately. The answer arrives later as a
separate call to the callback target, correlated solely by the id.

Proofs in the reference client are Ed25519 signatures (RFC 8032) over
the canonical message {"cleartexts": <hex>, "correlation_id": <int>}.
"""

import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .handles import CiphertextHandle, EncryptedHandle
from .hashing import proof_message
from .util import b64d, b64e

# (correlation_id, cleartexts, proof)
CallbackTarget = Callable[[int, bytes, bytes], object]

UINT256_SIZE = 32


class DecryptionOracle(ABC):
    """Abstract interface for an asynchronous decryption oracle."""

    @abstractmethod
    def request(self, handles: Sequence[EncryptedHandle], callback_target: CallbackTarget) -> int:
        """
        Hand the ordered handles to the oracle.

        Returns:
            The oracle-issued correlation id
        """
        pass

    @abstractmethod
    def verify(self, correlation_id: int, cleartexts: bytes, proof: bytes) -> bool:
        """Return True if proof attests the cleartexts for correlation_id."""
        pass


# ============================================================
# Cleartext codec
# ============================================================

def encode_uint256s(values: Sequence[int]) -> bytes:
    """Encode unsigned integers as consecutive 32-byte big-endian words."""
    out = bytearray()
    for v in values:
        if v < 0 or v >= 1 << 256:
            raise ValueError(f"value out of uint256 range: {v}")
        out += int(v).to_bytes(UINT256_SIZE, "big")
    return bytes(out)


def decode_uint256s(data: bytes, count: int) -> Tuple[int, ...]:
    """
    Decode exactly `count` 32-byte big-endian unsigned integers.

    Raises:
        ValueError: If data is not exactly count * 32 bytes
    """
    if len(data) != count * UINT256_SIZE:
        raise ValueError(f"expected {count * UINT256_SIZE} bytes, got {len(data)}")
    return tuple(
        int.from_bytes(data[i:i + UINT256_SIZE], "big")
        for i in range(0, len(data), UINT256_SIZE)
    )


# ============================================================
# Reference Ed25519 client
# ============================================================

@dataclass
class OutboundRequest:
    """A request waiting to be relayed to the oracle."""
    correlation_id: int
    handles: List[bytes]
    callback_target: CallbackTarget = field(repr=False)

    def to_dict(self) -> Dict:
        return {
            "correlation_id": self.correlation_id,
            "handles": [h.hex() for h in self.handles],
        }


class Ed25519OracleClient(DecryptionOracle):
    """
    Oracle client that queues requests for a relay and verifies
    Ed25519-signed responses.

    Correlation ids are issued locally, sequentially from 1. The relay
    drains `outbound()`, has the oracle decrypt, and posts the signed
    answer back to the callback target.

    Thread-safe.
    """

    def __init__(self, verify_key_b64: str, kid: str = "oracle-01"):
        self._verify_key = VerifyKey(b64d(verify_key_b64))
        self._kid = kid
        self._next_id = 1
        self._issued: Dict[int, OutboundRequest] = {}
        self._pending: Dict[int, OutboundRequest] = {}
        self._lock = threading.Lock()

    @property
    def kid(self) -> str:
        return self._kid

    def request(self, handles: Sequence[EncryptedHandle], callback_target: CallbackTarget) -> int:
        with self._lock:
            correlation_id = self._next_id
            self._next_id += 1
            req = OutboundRequest(
                correlation_id=correlation_id,
                handles=[h.as_commitment_bytes() for h in handles],
                callback_target=callback_target,
            )
            self._issued[correlation_id] = req
            self._pending[correlation_id] = req
            return correlation_id

    def verify(self, correlation_id: int, cleartexts: bytes, proof: bytes) -> bool:
        with self._lock:
            if correlation_id not in self._issued:
                return False
        try:
            self._verify_key.verify(proof_message(correlation_id, cleartexts), proof)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    def outbound(self) -> List[OutboundRequest]:
        """Requests not yet acknowledged by the relay."""
        with self._lock:
            return [self._pending[k] for k in sorted(self._pending)]

    def get_request(self, correlation_id: int) -> Optional[OutboundRequest]:
        with self._lock:
            return self._issued.get(correlation_id)

    def acknowledge(self, correlation_id: int) -> bool:
        """Drop a request from the outbound queue. Returns False if unknown."""
        with self._lock:
            return self._pending.pop(correlation_id, None) is not None


class LocalDecryptionOracle(Ed25519OracleClient):
    """
    In-process oracle for simulations and tests.

    Acts as its own ciphertext coprocessor: `encrypt` mints random
    handles and remembers their plaintexts; `fulfill` decrypts a queued
    request, signs the answer and delivers it to the callback target.

    WARNING: Holds plaintexts in memory. Not for production.
    """

    def __init__(self, signing_key: Optional[SigningKey] = None, kid: str = "oracle-local"):
        self._signing_key = signing_key or SigningKey.generate()
        super().__init__(b64e(bytes(self._signing_key.verify_key)), kid=kid)
        self._plaintexts: Dict[bytes, int] = {}

    @property
    def verify_key_b64(self) -> str:
        return b64e(bytes(self._signing_key.verify_key))

    def encrypt(self, value: int) -> CiphertextHandle:
        handle = CiphertextHandle(secrets.token_bytes(32))
        with self._lock:
            self._plaintexts[handle.as_commitment_bytes()] = int(value)
        return handle

    def sign(self, correlation_id: int, cleartexts: bytes) -> bytes:
        return self._signing_key.sign(proof_message(correlation_id, cleartexts)).signature

    def respond(self, correlation_id: int) -> Tuple[bytes, bytes]:
        """
        Decrypt a queued request and sign the answer without delivering it.

        Returns:
            Tuple of (cleartexts, proof)
        """
        req = self.get_request(correlation_id)
        if req is None:
            raise KeyError(f"unknown correlation id: {correlation_id}")
        with self._lock:
            values = [self._plaintexts[h] for h in req.handles]
        cleartexts = encode_uint256s(values)
        return cleartexts, self.sign(correlation_id, cleartexts)

    def fulfill(self, correlation_id: int):
        """Decrypt, sign and deliver to the callback target."""
        cleartexts, proof = self.respond(correlation_id)
        req = self.get_request(correlation_id)
        self.acknowledge(correlation_id)
        return req.callback_target(correlation_id, cleartexts, proof)
