"""
Encrypted attribute handles.

A handle is an opaque reference to a value kept under ciphertext
protection. The service never looks inside a handle: it only asks
whether the handle is well-formed and takes its canonical byte
projection for hashing and for submission to the decryption oracle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .util import hex_to_bytes

HANDLE_SIZE = 32


class EncryptedHandle(ABC):
    """Abstract interface for an opaque encrypted-attribute handle."""

    @abstractmethod
    def is_initialized(self) -> bool:
        """Return True if the handle refers to a well-formed ciphertext."""
        pass

    @abstractmethod
    def as_commitment_bytes(self) -> bytes:
        """Canonical byte projection used for hashing and oracle submission."""
        pass


@dataclass(frozen=True)
class CiphertextHandle(EncryptedHandle):
    """
    Fixed-size handle issued by a ciphertext coprocessor.

    The handle is initialized when it is exactly 32 bytes and not the
    all-zero value, which coprocessors reserve for "no ciphertext".
    """
    value: bytes

    def is_initialized(self) -> bool:
        return len(self.value) == HANDLE_SIZE and any(self.value)

    def as_commitment_bytes(self) -> bytes:
        return bytes(self.value)

    def hex(self) -> str:
        return self.value.hex()

    @classmethod
    def from_hex(cls, s: str) -> 'CiphertextHandle':
        """Parse a hex handle, with or without a 0x prefix."""
        return cls(hex_to_bytes(s))

    @classmethod
    def empty(cls) -> 'CiphertextHandle':
        return cls(bytes(HANDLE_SIZE))

    def __repr__(self) -> str:
        return f"CiphertextHandle(0x{self.value.hex()[:12]}...)"
