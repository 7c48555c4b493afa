# crypto_core/hasher.py
from __future__ import annotations

import hashlib
from typing import Protocol, Sequence, runtime_checkable

import base58
from eth_utils import keccak

from .errors import InvalidArgument
from .field import SNARK_SCALAR_FIELD, int_to_be32, require_field


@runtime_checkable
class Hasher(Protocol):
    """
    Two-to-one node hash plus a Poseidon-style hash over short tuples.

    The accumulator only needs `hash2`; commitments, nullifiers and the
    builder's cross-checks use `hash_many`. Both must be deterministic and
    return scalar field elements. A circuit-compatible implementation (circomlib
    Poseidon over BN254) is supplied by the caller.
    """

    def hash2(self, left: int, right: int) -> int: ...

    def hash_many(self, inputs: Sequence[int]) -> int: ...


class Sha256FieldHasher:
    """
    SHA-256 over fixed-width big-endian inputs, reduced into the scalar field.

    Off-chain tooling only: roots built with it will NOT match a Poseidon
    circuit. `hash2(a, b)` equals `hash_many([a, b])`, as Poseidon2 does.
    """

    def hash_many(self, inputs: Sequence[int]) -> int:
        if not inputs:
            raise InvalidArgument("hash_many needs at least one input")
        h = hashlib.sha256()
        for v in inputs:
            h.update(int_to_be32(require_field(v)))
        return int.from_bytes(h.digest(), byteorder="big") % SNARK_SCALAR_FIELD

    def hash2(self, left: int, right: int) -> int:
        return self.hash_many((left, right))


# ---------- commitment scheme ----------
def compute_precommitment(hasher: Hasher, nullifier: int, secret: int) -> int:
    return hasher.hash_many([nullifier, secret])


def compute_commitment(hasher: Hasher, value: int, label: int, precommitment: int) -> int:
    return hasher.hash_many([value, label, precommitment])


def commitment_from_preimage(hasher: Hasher, value: int, label: int, nullifier: int, secret: int) -> int:
    return compute_commitment(hasher, value, label, compute_precommitment(hasher, nullifier, secret))


def compute_nullifier_hash(hasher: Hasher, nullifier: int) -> int:
    return hasher.hash_many([nullifier])


# ---------- keccak-derived values ----------
def compute_label(scope: bytes, nonce: int) -> int:
    """label = keccak256(scope || nonce as u64 LE) mod field"""
    digest = keccak(bytes(scope) + int(nonce).to_bytes(8, byteorder="little", signed=False))
    return int.from_bytes(digest, byteorder="big") % SNARK_SCALAR_FIELD


def compute_context(processooor: str, data: bytes, scope: bytes) -> int:
    """
    context = keccak256("IPrivacyPool.Withdrawal" || processooor || data || scope) mod field

    `processooor` is the base58 public key of the account allowed to process
    the withdrawal; binding it here stops a proof being replayed for another
    request.
    """
    processooor_bytes = base58.b58decode(processooor)
    if len(processooor_bytes) != 32:
        raise InvalidArgument(f"processooor must decode to 32 bytes, got {len(processooor_bytes)}")
    digest = keccak(b"IPrivacyPool.Withdrawal" + processooor_bytes + bytes(data) + bytes(scope))
    return int.from_bytes(digest, byteorder="big") % SNARK_SCALAR_FIELD


__all__ = [
    "Hasher",
    "Sha256FieldHasher",
    "compute_precommitment",
    "compute_commitment",
    "commitment_from_preimage",
    "compute_nullifier_hash",
    "compute_label",
    "compute_context",
]
