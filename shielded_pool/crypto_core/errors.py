# crypto_core/errors.py
from __future__ import annotations

from typing import Optional


class ShieldedPoolError(Exception):
    """Base class for every error raised by the shielded pool core."""


class IndexOutOfRange(ShieldedPoolError, IndexError):
    """A proof was requested for a leaf that does not exist."""


class InvalidArgument(ShieldedPoolError, ValueError):
    """Malformed input: padding beyond bound, bad sibling count, rejected leaf."""


class FieldElementOutOfRange(ShieldedPoolError, ValueError):
    """A value outside [0, modulus) reached an encoder or the accumulator."""

    def __init__(self, value: int, modulus: int, what: str = "value"):
        self.value = value
        self.modulus = modulus
        super().__init__(f"{what} {value} is not a field element (modulus {modulus})")


class AccumulatorCorrupted(ShieldedPoolError):
    """An accumulator's level layout no longer matches its size."""


class InvalidWithdrawal(ShieldedPoolError):
    """A withdrawal precondition failed. Re-derive the inputs; nothing is corrected silently."""


class ProvingFailed(ShieldedPoolError):
    """The external proving engine rejected the witness or crashed."""

    def __init__(self, message: str, diagnostic: Optional[str] = None):
        self.diagnostic = diagnostic
        if diagnostic:
            message = f"{message}\n{diagnostic[:2000]}"
        super().__init__(message)


class RootMismatch(ShieldedPoolError):
    """A recomputed root disagrees with the stored one. Never catch-and-ignore."""

    def __init__(self, expected: int, computed: int, what: str = "root"):
        self.expected = expected
        self.computed = computed
        super().__init__(f"{what} mismatch: expected {expected}, computed {computed}")


__all__ = [
    "ShieldedPoolError",
    "IndexOutOfRange",
    "InvalidArgument",
    "FieldElementOutOfRange",
    "InvalidWithdrawal",
    "ProvingFailed",
    "RootMismatch",
    "AccumulatorCorrupted",
]
