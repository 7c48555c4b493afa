# crypto_core/withdrawal.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Tuple

from shielded_pool.logging_config import get_logger
from shielded_pool.schemas_api import (
    WITHDRAW_PUBLIC_SIGNALS,
    WITHDRAW_SIGNAL_NAMES,
    Note,
    ProofArtifact,
    RagequitInputRecord,
    WithdrawalInputRecord,
)

from .errors import InvalidWithdrawal, ProvingFailed, RootMismatch
from .field import MAX_TREE_DEPTH, require_field
from .hasher import Hasher, commitment_from_preimage, compute_nullifier_hash
from .lean_imt import InclusionProof, pad_siblings, verify_proof

if TYPE_CHECKING:
    from shielded_pool.pool.prover_adapter import Prover

logger = get_logger("withdrawal")


def _check_inclusion(proof: InclusionProof, hasher: Hasher, what: str) -> None:
    computed = verify_proof(proof.leaf, proof.index, proof.siblings, proof.depth, hasher)
    if computed != proof.root:
        raise RootMismatch(proof.root, computed, what=f"{what} root")


class WithdrawalInputBuilder:
    """
    Assembles the withdraw circuit's input record and rejects what the circuit
    would reject, before any proving time is spent.

    Pure: the only side effect of `build_and_prove` is the prover call.
    """

    def __init__(self, hasher: Hasher, prover: Optional["Prover"] = None):
        self.hasher = hasher
        self.prover = prover

    def build(
        self,
        existing: Note,
        withdrawn_value: int,
        new_secret: int,
        new_nullifier: int,
        state_proof: InclusionProof,
        admission_proof: InclusionProof,
        context: int,
        max_tree_depth: int = MAX_TREE_DEPTH,
    ) -> WithdrawalInputRecord:
        if isinstance(withdrawn_value, bool) or not isinstance(withdrawn_value, int) or withdrawn_value < 0:
            raise InvalidWithdrawal(f"withdrawn value must be a non-negative int, got {withdrawn_value!r}")
        if withdrawn_value > existing.value:
            raise InvalidWithdrawal(
                f"cannot withdraw {withdrawn_value}: existing commitment holds only {existing.value}"
            )

        commitment = commitment_from_preimage(
            self.hasher, existing.value, existing.label, existing.nullifier, existing.secret
        )
        if state_proof.leaf != commitment:
            raise InvalidWithdrawal(
                f"state proof leaf {state_proof.leaf} is not the commitment of the existing note ({commitment})"
            )
        if admission_proof.leaf != existing.label:
            raise InvalidWithdrawal(
                f"admission proof leaf {admission_proof.leaf} is not the note label {existing.label}"
            )

        _check_inclusion(state_proof, self.hasher, "state")
        _check_inclusion(admission_proof, self.hasher, "ASP")

        require_field(context, what="context")
        for v, what in ((new_secret, "new secret"), (new_nullifier, "new nullifier")):
            require_field(v, what=what)

        record = WithdrawalInputRecord(
            withdrawn_value=withdrawn_value,
            state_root=state_proof.root,
            state_tree_depth=state_proof.depth,
            asp_root=admission_proof.root,
            asp_tree_depth=admission_proof.depth,
            context=context,
            label=existing.label,
            existing_value=existing.value,
            existing_nullifier=existing.nullifier,
            existing_secret=existing.secret,
            new_nullifier=new_nullifier,
            new_secret=new_secret,
            state_siblings=pad_siblings(state_proof.siblings, max_tree_depth),
            state_index=state_proof.index,
            asp_siblings=pad_siblings(admission_proof.siblings, max_tree_depth),
            asp_index=admission_proof.index,
        )
        logger.debug(
            "withdrawal record: value=%d state_depth=%d asp_depth=%d",
            withdrawn_value, record.state_tree_depth, record.asp_tree_depth,
        )
        return record

    def expected_public_signals(
        self, existing: Note, new_nullifier: int, new_secret: int, record: WithdrawalInputRecord
    ) -> Tuple[int, ...]:
        remaining = existing.value - record.withdrawn_value
        new_commitment = commitment_from_preimage(
            self.hasher, remaining, existing.label, new_nullifier, new_secret
        )
        nullifier_hash = compute_nullifier_hash(self.hasher, existing.nullifier)
        return record.public_inputs() + (new_commitment, nullifier_hash)

    def build_and_prove(
        self,
        existing: Note,
        withdrawn_value: int,
        new_secret: int,
        new_nullifier: int,
        state_proof: InclusionProof,
        admission_proof: InclusionProof,
        context: int,
        max_tree_depth: int = MAX_TREE_DEPTH,
    ) -> Tuple[WithdrawalInputRecord, ProofArtifact]:
        if self.prover is None:
            raise RuntimeError("WithdrawalInputBuilder has no prover configured")

        record = self.build(
            existing, withdrawn_value, new_secret, new_nullifier,
            state_proof, admission_proof, context, max_tree_depth,
        )
        artifact = self.prover.prove(record)

        if len(artifact.public_signals) != WITHDRAW_PUBLIC_SIGNALS:
            raise ProvingFailed(
                f"prover returned {len(artifact.public_signals)} public signals, expected {WITHDRAW_PUBLIC_SIGNALS}"
            )
        expected = self.expected_public_signals(existing, new_nullifier, new_secret, record)
        mismatched = [
            name
            for name, got, want in zip(WITHDRAW_SIGNAL_NAMES, artifact.public_signals, expected)
            if got != want
        ]
        if mismatched:
            raise ProvingFailed(
                "public signals disagree with the input record",
                diagnostic=f"mismatched: {', '.join(mismatched)}",
            )
        logger.info("withdrawal proof ready: value=%d", withdrawn_value)
        return record, artifact


class RagequitInputBuilder:
    """Input record for the 4-signal ragequit flow: the original depositor exits with the full value."""

    def __init__(self, hasher: Hasher):
        self.hasher = hasher

    def build(self, note: Note) -> RagequitInputRecord:
        return RagequitInputRecord(
            value=note.value, label=note.label, nullifier=note.nullifier, secret=note.secret
        )

    def expected_public_signals(self, note: Note) -> Tuple[int, ...]:
        commitment = commitment_from_preimage(self.hasher, note.value, note.label, note.nullifier, note.secret)
        return (note.value, note.label, commitment, compute_nullifier_hash(self.hasher, note.nullifier))


__all__ = ["WithdrawalInputBuilder", "RagequitInputBuilder"]
