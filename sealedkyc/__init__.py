"""
SealedKYC

Batch lifecycle and asynchronous decryption-oracle protocol for attested,
encrypted KYC attributes.

Accredited providers submit opaque encrypted handles (age, country code)
for a user into the current verification batch. A provider can later ask
for a one-time, proven disclosure of the user's age: the service commits
to the exact ciphertext handles, hands them to an external decryption
oracle, and accepts the oracle's answer only if the commitment still
holds, the proof verifies and the request has not been answered before.

Usage:
    from sealedkyc import LocalDecryptionOracle, SealedKYCService

    oracle = LocalDecryptionOracle()
    service = SealedKYCService(owner="owner", oracle=oracle)
    service.add_provider("owner", "provider-1")

    service.submit("provider-1", "alice", oracle.encrypt(25), oracle.encrypt(1))
    correlation_id = service.request_verification("provider-1", 1, "alice")

    disclosure = oracle.fulfill(correlation_id)
    assert disclosure.value == 25
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from .errors import (
    ErrorCode,
    SealedKYCError,
    AuthorizationError,
    LifecycleError,
    RateLimitError,
    ConfigError,
    IntegrityError,
)
from .handles import EncryptedHandle, CiphertextHandle
from .clock import Clock, MonotonicClock, ManualClock
from .hashing import canonicalize, sha256_hash, state_commitment, proof_message
from .oracle import (
    DecryptionOracle,
    Ed25519OracleClient,
    LocalDecryptionOracle,
    OutboundRequest,
    encode_uint256s,
    decode_uint256s,
)
from .access import AccessControlGate
from .cooldown import CooldownEnforcer, CooldownResult
from .batches import BatchLifecycleManager, BatchSnapshot
from .records import EncryptedRecord, EncryptedRecordStore
from .coordinator import DecryptionContext, DecryptionRequestCoordinator, DecryptionState
from .callback import CallbackVerifier, Disclosure
from .events import Event, EventKind, EventSink, InMemoryEventLog
from .service import SealedKYCService


__all__ = [
    "__version__",

    # Errors
    "ErrorCode",
    "SealedKYCError",
    "AuthorizationError",
    "LifecycleError",
    "RateLimitError",
    "ConfigError",
    "IntegrityError",

    # Capabilities
    "EncryptedHandle",
    "CiphertextHandle",
    "Clock",
    "MonotonicClock",
    "ManualClock",
    "DecryptionOracle",
    "Ed25519OracleClient",
    "LocalDecryptionOracle",
    "OutboundRequest",
    "encode_uint256s",
    "decode_uint256s",

    # Hashing
    "canonicalize",
    "sha256_hash",
    "state_commitment",
    "proof_message",

    # Components
    "AccessControlGate",
    "CooldownEnforcer",
    "CooldownResult",
    "BatchLifecycleManager",
    "BatchSnapshot",
    "EncryptedRecord",
    "EncryptedRecordStore",
    "DecryptionContext",
    "DecryptionRequestCoordinator",
    "DecryptionState",
    "CallbackVerifier",
    "Disclosure",

    # Events
    "Event",
    "EventKind",
    "EventSink",
    "InMemoryEventLog",

    # Service
    "SealedKYCService",
]
