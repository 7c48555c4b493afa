"""
Byte encodings for Groth16 proofs and public signals.

Two conventions exist and must never be mixed:

* Verifier layout (what the on-chain alt_bn128 pairing check consumes):
  every limb is 32 bytes big-endian, pointA has its y negated, G2 limbs are
  ordered imaginary-first. Public signals are 32-byte big-endian scalars.
* Canonical little-endian bytes: interchange / diagnostics only
  (`field_to_canonical_bytes`, `bytes_to_field`). Never fed to the verifier.

Instruction payload:

    pointA (64) | pointB (128) | pointC (64) | count (u32 LE) | count x 32-byte BE signals
"""
from __future__ import annotations

import struct
from typing import Optional, Sequence, Tuple

from shielded_pool.schemas_api import G1Point, G2Point, ProofArtifact, VerifierPayload

from .errors import InvalidArgument
from .field import (
    BN254_BASE_FIELD,
    FIELD_BYTES,
    SNARK_SCALAR_FIELD,
    int_to_be32,
    int_to_le32,
    le32_to_int,
    require_field,
)

G1_BYTES = 64
G2_BYTES = 128
PROOF_BYTES = G1_BYTES + G2_BYTES + G1_BYTES
COUNT_BYTES = 4


# ---------- scalar encodings ----------
def field_to_canonical_bytes(x: int) -> bytes:
    """32-byte little-endian interchange form of a scalar field element."""
    return int_to_le32(require_field(x, SNARK_SCALAR_FIELD, "field element"))


def bytes_to_field(b: bytes) -> int:
    """Inverse of field_to_canonical_bytes."""
    return require_field(le32_to_int(bytes(b)), SNARK_SCALAR_FIELD, "field element")


def encode_public_signal(x: int) -> bytes:
    """32-byte big-endian public signal, as the verifier reads it."""
    return int_to_be32(require_field(x, SNARK_SCALAR_FIELD, "public signal"))


# ---------- curve points ----------
def negate_g1_y(y: int) -> int:
    require_field(y, BN254_BASE_FIELD, "G1 y")
    return (BN254_BASE_FIELD - y) % BN254_BASE_FIELD


def encode_g1_for_verifier(point: G1Point, negate_y: bool) -> bytes:
    """x (32 BE) || y or -y (32 BE). Only pointA is negated."""
    x = require_field(point.x, BN254_BASE_FIELD, "G1 x")
    y = require_field(point.y, BN254_BASE_FIELD, "G1 y")
    if negate_y:
        y = negate_g1_y(y)
    return int_to_be32(x) + int_to_be32(y)


def encode_g2_for_verifier(point: G2Point) -> bytes:
    """[x.imaginary, x.real, y.imaginary, y.real], each 32 BE, as alt_bn128 pairing expects."""
    limbs = (point.x.imaginary, point.x.real, point.y.imaginary, point.y.real)
    return b"".join(int_to_be32(require_field(v, BN254_BASE_FIELD, "G2 limb")) for v in limbs)


def encode_proof(artifact: ProofArtifact) -> Tuple[bytes, bytes, bytes]:
    return (
        encode_g1_for_verifier(artifact.point_a, negate_y=True),
        encode_g2_for_verifier(artifact.point_b),
        encode_g1_for_verifier(artifact.point_c, negate_y=False),
    )


# ---------- instruction payload ----------
def encode_verifier_payload(artifact: ProofArtifact, expected_arity: Optional[int] = None) -> bytes:
    signals: Sequence[int] = artifact.public_signals
    if expected_arity is not None and len(signals) != expected_arity:
        raise InvalidArgument(f"expected {expected_arity} public signals, got {len(signals)}")
    a, b, c = encode_proof(artifact)
    parts = [a, b, c, struct.pack("<I", len(signals))]
    parts.extend(encode_public_signal(s) for s in signals)
    return b"".join(parts)


def decode_verifier_payload(data: bytes) -> VerifierPayload:
    """Split a payload back into its parts. Bytes are returned as encoded (pointA stays negated)."""
    data = bytes(data)
    header = PROOF_BYTES + COUNT_BYTES
    if len(data) < header:
        raise InvalidArgument(f"payload too short: {len(data)} bytes")
    (count,) = struct.unpack_from("<I", data, PROOF_BYTES)
    if len(data) != header + count * FIELD_BYTES:
        raise InvalidArgument(f"payload length {len(data)} does not match {count} public signals")
    signals = tuple(
        data[header + i * FIELD_BYTES: header + (i + 1) * FIELD_BYTES] for i in range(count)
    )
    return VerifierPayload(
        proof_a=data[:G1_BYTES],
        proof_b=data[G1_BYTES:G1_BYTES + G2_BYTES],
        proof_c=data[G1_BYTES + G2_BYTES:PROOF_BYTES],
        public_signals=signals,
    )


__all__ = [
    "G1_BYTES",
    "G2_BYTES",
    "PROOF_BYTES",
    "field_to_canonical_bytes",
    "bytes_to_field",
    "encode_public_signal",
    "negate_g1_y",
    "encode_g1_for_verifier",
    "encode_g2_for_verifier",
    "encode_proof",
    "encode_verifier_payload",
    "decode_verifier_payload",
]
