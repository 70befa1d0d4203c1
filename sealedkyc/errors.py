"""
SealedKYC Error Taxonomy

Every rejected precondition is raised synchronously as a distinguishable
error kind. The kind tells the caller which class of rule was violated;
the code identifies the exact rule.

    AuthorizationError  caller lacks the owner or provider role
    LifecycleError      paused system, closed batch, unknown batch, enrollment
    RateLimitError      cooldown not yet elapsed
    ConfigError         invalid configuration value
    IntegrityError      replay, commitment drift, bad proof, malformed handle
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable error codes reported to callers and written to the audit log."""
    # Authorization
    NOT_OWNER = "NOT_OWNER"
    NOT_PROVIDER = "NOT_PROVIDER"
    # Lifecycle
    PAUSED = "PAUSED"
    NOT_PAUSED = "NOT_PAUSED"
    BATCH_CLOSED = "BATCH_CLOSED"
    INVALID_BATCH = "INVALID_BATCH"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    NOT_ENROLLED = "NOT_ENROLLED"
    # Rate limiting
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    # Configuration
    INVALID_COOLDOWN = "INVALID_COOLDOWN"
    # Integrity
    REPLAY_DETECTED = "REPLAY_DETECTED"
    CONTEXT_CANCELLED = "CONTEXT_CANCELLED"
    STATE_MISMATCH = "STATE_MISMATCH"
    INVALID_PROOF = "INVALID_PROOF"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    MALFORMED_CLEARTEXT = "MALFORMED_CLEARTEXT"
    DUPLICATE_CORRELATION = "DUPLICATE_CORRELATION"


class SealedKYCError(Exception):
    """Base class for all rejected operations."""

    kind = "error"

    def __init__(self, code: ErrorCode, message: str, **details: Any):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code.value}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        d = {"kind": self.kind, "error": self.code.value, "message": self.message}
        if self.details:
            d["details"] = dict(self.details)
        return d


class AuthorizationError(SealedKYCError):
    """Caller lacks the owner or provider role."""
    kind = "authorization"


class LifecycleError(SealedKYCError):
    """Operation targets a paused system, closed batch or invalid enrollment."""
    kind = "lifecycle"


class RateLimitError(SealedKYCError):
    """Cooldown has not yet elapsed for the key."""
    kind = "rate_limit"

    def __init__(self, code: ErrorCode, message: str, retry_after: Optional[float] = None, **details: Any):
        self.retry_after = retry_after
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(code, message, **details)


class ConfigError(SealedKYCError):
    """Invalid configuration value."""
    kind = "config"


class IntegrityError(SealedKYCError):
    """Replay, commitment mismatch, invalid proof or malformed input."""
    kind = "integrity"
