"""
BN254 field constants and fixed-width integer <-> bytes helpers.

Two primes matter here:
- SNARK_SCALAR_FIELD: the circuit's field. Leaves, tree nodes and public
  signals are elements of it.
- BN254_BASE_FIELD: the field curve coordinates live in. Proof points are
  encoded (and G1 y is negated) modulo this prime.
"""
from __future__ import annotations

from typing import Union

from .errors import FieldElementOutOfRange, InvalidArgument

SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617
BN254_BASE_FIELD = 21888242871839275222246405745257275088696311157297823662689037894645226208583

FIELD_BYTES = 32
MAX_TREE_DEPTH = 32
ZERO = 0


def require_field(x: int, modulus: int = SNARK_SCALAR_FIELD, what: str = "value") -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise InvalidArgument(f"{what} must be an int, got {type(x).__name__}")
    if x < 0 or x >= modulus:
        raise FieldElementOutOfRange(x, modulus, what)
    return x


def int_to_be32(x: int) -> bytes:
    return x.to_bytes(FIELD_BYTES, byteorder="big", signed=False)


def int_to_le32(x: int) -> bytes:
    return x.to_bytes(FIELD_BYTES, byteorder="little", signed=False)


def be32_to_int(b: bytes) -> int:
    if len(b) != FIELD_BYTES:
        raise InvalidArgument(f"expected {FIELD_BYTES} bytes, got {len(b)}")
    return int.from_bytes(b, byteorder="big", signed=False)


def le32_to_int(b: bytes) -> int:
    if len(b) != FIELD_BYTES:
        raise InvalidArgument(f"expected {FIELD_BYTES} bytes, got {len(b)}")
    return int.from_bytes(b, byteorder="little", signed=False)


def parse_field(value: Union[int, str], modulus: int = SNARK_SCALAR_FIELD, what: str = "value") -> int:
    """Accept an int, a decimal string (snarkjs style) or a 0x-hex string."""
    if isinstance(value, str):
        s = value.strip()
        try:
            value = int(s, 16) if s.lower().startswith("0x") else int(s, 10)
        except ValueError:
            raise InvalidArgument(f"{what} is not an integer: {s!r}") from None
    return require_field(value, modulus, what)


__all__ = [
    "SNARK_SCALAR_FIELD",
    "BN254_BASE_FIELD",
    "FIELD_BYTES",
    "MAX_TREE_DEPTH",
    "ZERO",
    "require_field",
    "int_to_be32",
    "int_to_le32",
    "be32_to_int",
    "le32_to_int",
    "parse_field",
]
