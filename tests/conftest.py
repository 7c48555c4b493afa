from __future__ import annotations

from typing import List, Sequence

import pytest

from shielded_pool.crypto_core.field import SNARK_SCALAR_FIELD
from shielded_pool.crypto_core.hasher import commitment_from_preimage, compute_nullifier_hash
from shielded_pool.schemas_api import (
    G1Point,
    G2Point,
    Fp2,
    ProofArtifact,
    RagequitInputRecord,
    WithdrawalInputRecord,
)


class LinearHasher:
    """
    Deterministic, order-sensitive stand-in for Poseidon.

    hash2(a, b) = 3a + 5b + 1 keeps small test trees hand-checkable.
    """

    def __init__(self) -> None:
        self.calls = 0

    def hash2(self, left: int, right: int) -> int:
        self.calls += 1
        return (3 * left + 5 * right + 1) % SNARK_SCALAR_FIELD

    def hash_many(self, inputs: Sequence[int]) -> int:
        acc = 7
        for x in inputs:
            acc = (acc * 31 + x + 1) % SNARK_SCALAR_FIELD
        return acc


DUMMY_POINTS = dict(
    point_a=G1Point(x=1, y=2),
    point_b=G2Point(x=Fp2(real=3, imaginary=4), y=Fp2(real=5, imaginary=6)),
    point_c=G1Point(x=7, y=8),
)


class RecordingProver:
    """Answers with the public signals an honest circuit would output, and records each call."""

    def __init__(self, hasher) -> None:
        self.hasher = hasher
        self.calls: List[object] = []

    def prove(self, record) -> ProofArtifact:
        self.calls.append(record)
        if isinstance(record, RagequitInputRecord):
            signals = (
                record.value,
                record.label,
                commitment_from_preimage(self.hasher, record.value, record.label, record.nullifier, record.secret),
                compute_nullifier_hash(self.hasher, record.nullifier),
            )
        else:
            assert isinstance(record, WithdrawalInputRecord)
            remaining = record.existing_value - record.withdrawn_value
            signals = record.public_inputs() + (
                commitment_from_preimage(self.hasher, remaining, record.label, record.new_nullifier, record.new_secret),
                compute_nullifier_hash(self.hasher, record.existing_nullifier),
            )
        return ProofArtifact(public_signals=signals, **DUMMY_POINTS)


@pytest.fixture
def hasher() -> LinearHasher:
    return LinearHasher()


@pytest.fixture
def prover(hasher) -> RecordingProver:
    return RecordingProver(hasher)


@pytest.fixture
def scope() -> bytes:
    return bytes(range(32))
