"""
Access control gate: owner and provider roles plus the global pause flag.

The owner is fixed when the gate is created. Providers are added and
removed by the owner; both operations are idempotent flag sets. The
pause flag gates submissions and decryption requests, never the oracle
callback path.
"""

import threading
from typing import List, Set

from .errors import AuthorizationError, ErrorCode, LifecycleError


class AccessControlGate:
    """Role membership and pause state."""

    def __init__(self, owner: str):
        if not owner:
            raise ValueError("owner identity required")
        self._owner = owner
        self._providers: Set[str] = set()
        self._paused = False
        self._lock = threading.RLock()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._paused

    def is_provider(self, identity: str) -> bool:
        with self._lock:
            return identity in self._providers

    def providers(self) -> List[str]:
        with self._lock:
            return sorted(self._providers)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise AuthorizationError(ErrorCode.NOT_OWNER, f"{caller!r} is not the owner", caller=caller)

    def require_provider(self, caller: str) -> None:
        if not self.is_provider(caller):
            raise AuthorizationError(ErrorCode.NOT_PROVIDER, f"{caller!r} is not a provider", caller=caller)

    def require_not_paused(self) -> None:
        if self.paused:
            raise LifecycleError(ErrorCode.PAUSED, "service is paused")

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def add_provider(self, caller: str, provider: str) -> None:
        self.require_owner(caller)
        with self._lock:
            self._providers.add(provider)

    def remove_provider(self, caller: str, provider: str) -> None:
        self.require_owner(caller)
        with self._lock:
            self._providers.discard(provider)

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        with self._lock:
            if self._paused:
                raise LifecycleError(ErrorCode.PAUSED, "service is already paused")
            self._paused = True

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        with self._lock:
            if not self._paused:
                raise LifecycleError(ErrorCode.NOT_PAUSED, "service is not paused")
            self._paused = False
