from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator

from shielded_pool.crypto_core.errors import InvalidArgument
from shielded_pool.crypto_core.field import BN254_BASE_FIELD, be32_to_int, parse_field
from shielded_pool.crypto_core.lean_imt import InclusionProof

WITHDRAW_SIGNAL_NAMES: Tuple[str, ...] = (
    "withdrawnValue",
    "stateRoot",
    "stateTreeDepth",
    "ASPRoot",
    "ASPTreeDepth",
    "context",
    "newCommitmentHash",
    "existingNullifierHash",
)
RAGEQUIT_SIGNAL_NAMES: Tuple[str, ...] = ("value", "label", "commitmentHash", "nullifierHash")
WITHDRAW_PUBLIC_SIGNALS = len(WITHDRAW_SIGNAL_NAMES)
RAGEQUIT_PUBLIC_SIGNALS = len(RAGEQUIT_SIGNAL_NAMES)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)


# ---------- curve points ----------
class G1Point(_Frozen):
    x: conint(ge=0) = Field(..., description="Affine x coordinate (base field).")
    y: conint(ge=0) = Field(..., description="Affine y coordinate (base field).")


class Fp2(_Frozen):
    """Element real + imaginary * u of the quadratic extension."""
    real: conint(ge=0)
    imaginary: conint(ge=0)


class G2Point(_Frozen):
    x: Fp2
    y: Fp2


def _affine(coords: Sequence[Any], what: str) -> List[Any]:
    """snarkjs emits projective [x, y, z]; only z == 1 (affine) is accepted."""
    coords = list(coords)
    if len(coords) == 3:
        z = coords[2]
        if z not in ("1", 1, ["1", "0"], [1, 0]):
            raise InvalidArgument(f"{what} is not affine (z={z!r})")
        coords = coords[:2]
    if len(coords) != 2:
        raise InvalidArgument(f"{what} must have 2 coordinates, got {len(coords)}")
    return coords


def _coord(v: Any, what: str) -> int:
    return parse_field(v, BN254_BASE_FIELD, what)


class ProofArtifact(_Frozen):
    """
    A Groth16 proof plus its public signals. Immutable; consumed once by the
    codec.
    """

    point_a: G1Point
    point_b: G2Point
    point_c: G1Point
    public_signals: Tuple[conint(ge=0), ...] = Field(default_factory=tuple)

    @field_validator("public_signals", mode="before")
    @classmethod
    def _signals_as_ints(cls, v):
        return tuple(int(s) for s in v)

    @classmethod
    def from_snarkjs(cls, proof: Mapping[str, Any], public_signals: Sequence[Any]) -> "ProofArtifact":
        """Build from snarkjs `proof.json` / `public.json` contents."""
        try:
            ax, ay = _affine(proof["pi_a"], "pi_a")
            cx, cy = _affine(proof["pi_c"], "pi_c")
            bx, by = _affine(proof["pi_b"], "pi_b")
        except KeyError as e:
            raise InvalidArgument(f"snarkjs proof is missing {e.args[0]}") from None
        return cls(
            point_a=G1Point(x=_coord(ax, "pi_a x"), y=_coord(ay, "pi_a y")),
            point_b=G2Point(
                x=Fp2(real=_coord(bx[0], "pi_b x.c0"), imaginary=_coord(bx[1], "pi_b x.c1")),
                y=Fp2(real=_coord(by[0], "pi_b y.c0"), imaginary=_coord(by[1], "pi_b y.c1")),
            ),
            point_c=G1Point(x=_coord(cx, "pi_c x"), y=_coord(cy, "pi_c y")),
            public_signals=tuple(parse_field(s, what="public signal") for s in public_signals),
        )

    def named_signals(self) -> Dict[str, int]:
        if len(self.public_signals) == WITHDRAW_PUBLIC_SIGNALS:
            names = WITHDRAW_SIGNAL_NAMES
        elif len(self.public_signals) == RAGEQUIT_PUBLIC_SIGNALS:
            names = RAGEQUIT_SIGNAL_NAMES
        else:
            names = tuple(f"signal{i}" for i in range(len(self.public_signals)))
        return dict(zip(names, self.public_signals))


# ---------- notes ----------
class Note(_Frozen):
    """Private preimage of a spendable commitment."""
    value: conint(ge=0) = Field(..., description="Committed value (base units).")
    label: conint(ge=0) = Field(..., description="Label grouping the commitment under an approval scope.")
    nullifier: conint(ge=0) = Field(..., description="Nullifier preimage.")
    secret: conint(ge=0) = Field(..., description="Commitment secret.")


# ---------- circuit input records ----------
def _dec(x: int) -> str:
    return str(int(x))


class WithdrawalInputRecord(_Frozen):
    """
    Input handed to the withdraw circuit. Field order is the circuit's signal
    order: public inputs first, then private preimages, then the two padded
    Merkle paths.
    """

    withdrawn_value: conint(ge=0)
    state_root: conint(ge=0)
    state_tree_depth: conint(ge=0)
    asp_root: conint(ge=0)
    asp_tree_depth: conint(ge=0)
    context: conint(ge=0)

    label: conint(ge=0)
    existing_value: conint(ge=0)
    existing_nullifier: conint(ge=0)
    existing_secret: conint(ge=0)
    new_nullifier: conint(ge=0)
    new_secret: conint(ge=0)

    state_siblings: Tuple[conint(ge=0), ...]
    state_index: conint(ge=0)
    asp_siblings: Tuple[conint(ge=0), ...]
    asp_index: conint(ge=0)

    def to_circuit_inputs(self) -> Dict[str, Any]:
        """snarkjs input JSON: decimal strings, circuit signal names, circuit order."""
        return {
            "withdrawnValue": _dec(self.withdrawn_value),
            "stateRoot": _dec(self.state_root),
            "stateTreeDepth": _dec(self.state_tree_depth),
            "ASPRoot": _dec(self.asp_root),
            "ASPTreeDepth": _dec(self.asp_tree_depth),
            "context": _dec(self.context),
            "label": _dec(self.label),
            "existingValue": _dec(self.existing_value),
            "existingNullifier": _dec(self.existing_nullifier),
            "existingSecret": _dec(self.existing_secret),
            "newNullifier": _dec(self.new_nullifier),
            "newSecret": _dec(self.new_secret),
            "stateSiblings": [_dec(s) for s in self.state_siblings],
            "stateIndex": _dec(self.state_index),
            "ASPSiblings": [_dec(s) for s in self.asp_siblings],
            "ASPIndex": _dec(self.asp_index),
        }

    def public_inputs(self) -> Tuple[int, ...]:
        """The six public inputs, in public-signal order."""
        return (
            self.withdrawn_value,
            self.state_root,
            self.state_tree_depth,
            self.asp_root,
            self.asp_tree_depth,
            self.context,
        )


class RagequitInputRecord(_Frozen):
    value: conint(ge=0)
    label: conint(ge=0)
    nullifier: conint(ge=0)
    secret: conint(ge=0)

    def to_circuit_inputs(self) -> Dict[str, Any]:
        return {
            "value": _dec(self.value),
            "label": _dec(self.label),
            "nullifier": _dec(self.nullifier),
            "secret": _dec(self.secret),
        }


# ---------- decoded verifier payload ----------
class VerifierPayload(_Frozen):
    """Byte-level view of an encoded proof payload, with named signal accessors."""

    proof_a: bytes = Field(..., min_length=64, max_length=64)
    proof_b: bytes = Field(..., min_length=128, max_length=128)
    proof_c: bytes = Field(..., min_length=64, max_length=64)
    public_signals: Tuple[bytes, ...]

    def signal(self, i: int) -> int:
        return be32_to_int(self.public_signals[i])

    # withdraw layout
    @property
    def withdrawn_value(self) -> int:
        return self.signal(0)

    @property
    def state_root(self) -> int:
        return self.signal(1)

    @property
    def state_tree_depth(self) -> int:
        return self.signal(2)

    @property
    def asp_root(self) -> int:
        return self.signal(3)

    @property
    def asp_tree_depth(self) -> int:
        return self.signal(4)

    @property
    def context(self) -> int:
        return self.signal(5)

    @property
    def new_commitment_hash(self) -> int:
        return self.signal(6)

    @property
    def existing_nullifier_hash(self) -> int:
        return self.signal(7)


__all__ = [
    "WITHDRAW_SIGNAL_NAMES",
    "RAGEQUIT_SIGNAL_NAMES",
    "WITHDRAW_PUBLIC_SIGNALS",
    "RAGEQUIT_PUBLIC_SIGNALS",
    "G1Point",
    "Fp2",
    "G2Point",
    "ProofArtifact",
    "InclusionProof",
    "Note",
    "WithdrawalInputRecord",
    "RagequitInputRecord",
    "VerifierPayload",
]
