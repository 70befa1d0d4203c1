"""
Cooldown enforcement for SealedKYC.

Two independent per-key cooldowns share one configured duration:
- submissions, keyed by the user being enrolled
- decryption requests, keyed by the requesting provider

A check fails while `now < last + cooldown_seconds`. The first action
for a key always passes.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ConfigError, ErrorCode, RateLimitError


@dataclass
class CooldownResult:
    """Result of a cooldown check."""
    allowed: bool
    ready_at: float
    retry_after: Optional[float] = None


class CooldownEnforcer:
    """
    Per-key cooldown tracker.

    Thread-safe; checks and records are separate so the caller can
    record only after the whole operation has succeeded.
    """

    def __init__(self, cooldown_seconds: int = 60):
        self._cooldown = _validated(cooldown_seconds)
        self._last_submission: Dict[str, float] = {}
        self._last_request: Dict[str, float] = {}
        self._lock = threading.RLock()

    @property
    def cooldown_seconds(self) -> int:
        with self._lock:
            return self._cooldown

    def set_cooldown_seconds(self, value: int) -> tuple:
        """
        Replace the cooldown duration.

        Returns:
            Tuple of (old, new)

        Raises:
            ConfigError: If value is not a positive integer
        """
        new = _validated(value)
        with self._lock:
            old = self._cooldown
            self._cooldown = new
        return old, new

    def check(self, last: Optional[float], now: float) -> CooldownResult:
        with self._lock:
            if last is None:
                return CooldownResult(allowed=True, ready_at=now)
            ready_at = last + self._cooldown
        if now < ready_at:
            return CooldownResult(allowed=False, ready_at=ready_at, retry_after=ready_at - now)
        return CooldownResult(allowed=True, ready_at=ready_at)

    def check_submission_cooldown(self, user: str, now: float) -> None:
        result = self.check(self.last_submission(user), now)
        if not result.allowed:
            raise RateLimitError(
                ErrorCode.COOLDOWN_ACTIVE,
                f"submission cooldown active for {user!r}",
                retry_after=result.retry_after,
                user=user,
            )

    def check_request_cooldown(self, provider: str, now: float) -> None:
        result = self.check(self.last_request(provider), now)
        if not result.allowed:
            raise RateLimitError(
                ErrorCode.COOLDOWN_ACTIVE,
                f"request cooldown active for {provider!r}",
                retry_after=result.retry_after,
                provider=provider,
            )

    def record_submission(self, user: str, now: float) -> None:
        with self._lock:
            self._last_submission[user] = now

    def record_request(self, provider: str, now: float) -> None:
        with self._lock:
            self._last_request[provider] = now

    def last_submission(self, user: str) -> Optional[float]:
        with self._lock:
            return self._last_submission.get(user)

    def last_request(self, provider: str) -> Optional[float]:
        with self._lock:
            return self._last_request.get(provider)


def _validated(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(ErrorCode.INVALID_COOLDOWN, f"cooldown must be a positive integer, got {value!r}")
    return value
