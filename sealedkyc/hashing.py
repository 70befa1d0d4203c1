"""
SealedKYC Canonical Encoding and Hashing

All digests use SHA-256 over canonical JSON with lowercase hexadecimal
output, prefixed with the algorithm name ("sha256:...").

Canonical JSON:
- Object keys sorted lexicographically
- No whitespace between tokens
- UTF-8 encoded, no ASCII escaping
- Arrays preserve order
- Raw bytes are not allowed; callers hex-encode them first
"""

import hashlib
import hmac
import json
from typing import Any, Dict, List, Sequence, Union

from .handles import EncryptedHandle


def canonicalize(obj: Any) -> bytes:
    """Convert an object to canonical JSON bytes."""
    return json.dumps(
        _canonical_value(obj),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    ).encode('utf-8')


def _canonical_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): _canonical_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(item) for item in value]
    raise ValueError(f"Cannot canonicalize type: {type(value)}")


def sha256_hash(data: Union[bytes, str]) -> str:
    """Compute SHA-256 and return it as "sha256:<hex>"."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def handle_list_bytes(handles: Sequence[EncryptedHandle]) -> List[bytes]:
    """Project an ordered handle list onto its canonical byte form."""
    return [h.as_commitment_bytes() for h in handles]


def state_commitment(handles: Sequence[EncryptedHandle], service_identity: str) -> str:
    """
    Compute the state commitment for a decryption request.

    The commitment binds the exact ordered list of ciphertext handles to
    the identity of the service that issued the request. It is computed
    once when the request is handed to the oracle and again when the
    oracle answers; the two must be equal for the answer to be accepted.

    Args:
        handles: Ordered handles, in the order they are sent to the oracle
        service_identity: Identity of this service instance

    Returns:
        Commitment in format "sha256:abcdef..."
    """
    payload = {
        "handles": [b.hex() for b in handle_list_bytes(handles)],
        "service_identity": service_identity,
    }
    return sha256_hash(canonicalize(payload))


def proof_message(correlation_id: int, cleartexts: bytes) -> bytes:
    """Canonical bytes an oracle signs when answering a request."""
    return canonicalize({
        "cleartexts": cleartexts.hex(),
        "correlation_id": int(correlation_id),
    })


def commitments_equal(a: str, b: str) -> bool:
    """Compare two commitments in constant time."""
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


def event_digest(payload: Dict[str, Any]) -> str:
    """Content digest of an event payload."""
    return sha256_hash(canonicalize(payload))
