# pool/state.py
"""
Off-chain mirror of one privacy pool.

Owns the two accumulators used by a withdrawal (state tree over commitments,
ASP tree over approved labels), the circular history of recent state roots,
the deposit nonce that derives labels, the depositor behind each label and
the set of spent nullifier hashes. Each PoolState is an owned value: tests
and callers create fresh ones, nothing here is module-global.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Set

from shielded_pool import config
from shielded_pool.crypto_core.errors import InvalidArgument, InvalidWithdrawal
from shielded_pool.crypto_core.field import require_field
from shielded_pool.crypto_core.hasher import Hasher, compute_commitment, compute_context, compute_label
from shielded_pool.crypto_core.lean_imt import InclusionProof, LeanAccumulator
from shielded_pool.logging_config import get_logger
from shielded_pool.schemas_api import RAGEQUIT_PUBLIC_SIGNALS, WITHDRAW_PUBLIC_SIGNALS, VerifierPayload

logger = get_logger("pool.state")

MAX_DEPOSIT_VALUE = (1 << 64) - 1

# ragequit signal positions: value, label, commitmentHash, nullifierHash
_RQ_LABEL = 1
_RQ_NULLIFIER_HASH = 3


@dataclass(frozen=True)
class Deposit:
    value: int
    label: int
    precommitment: int
    commitment: int
    leaf_index: int
    nonce: int
    depositor: str


class RootHistory:
    """Fixed-size ring of recent roots; a proof against any of them is accepted."""

    def __init__(self, size: int = config.ROOT_HISTORY_SIZE):
        if size <= 0:
            raise InvalidArgument("root history size must be positive")
        self._roots: List[int] = [0] * size
        self._next = 0

    def add(self, root: int) -> None:
        self._roots[self._next] = root
        self._next = (self._next + 1) % len(self._roots)

    def __contains__(self, root: int) -> bool:
        return root != 0 and root in self._roots

    def latest(self) -> int:
        return self._roots[(self._next - 1) % len(self._roots)]


class PoolState:
    def __init__(
        self,
        hasher: Hasher,
        scope: bytes,
        max_tree_depth: int = config.MAX_TREE_DEPTH,
        root_history_size: int = config.ROOT_HISTORY_SIZE,
    ):
        if len(scope) != 32:
            raise InvalidArgument(f"scope must be 32 bytes, got {len(scope)}")
        self.hasher = hasher
        self.scope = bytes(scope)
        self.max_tree_depth = max_tree_depth
        self.state_tree = LeanAccumulator(hasher, name="state", max_depth=max_tree_depth)
        self.asp_tree = LeanAccumulator(hasher, name="asp", max_depth=max_tree_depth)
        self.roots = RootHistory(root_history_size)
        self.nonce = 0
        self.dead = False
        self._spent: Set[int] = set()
        self._depositors: Dict[int, str] = {}
        # serializes multi-step updates (nonce + tree + history); the trees lock themselves
        self._mutex = threading.Lock()

    # ---------- deposits ----------
    def deposit(self, value: int, precommitment: int, depositor: str) -> Deposit:
        if self.dead:
            raise InvalidArgument("pool is wound down, deposits are closed")
        if isinstance(value, bool) or not isinstance(value, int) or not 0 < value <= MAX_DEPOSIT_VALUE:
            raise InvalidArgument(f"invalid deposit value {value!r}")
        require_field(precommitment, what="precommitment")
        if not depositor:
            raise InvalidArgument("depositor is required")

        with self._mutex:
            # the nonce only advances once the insert has succeeded
            nonce = self.nonce + 1
            label = compute_label(self.scope, nonce)
            commitment = compute_commitment(self.hasher, value, label, precommitment)
            index = self.state_tree.insert(commitment)
            self.nonce = nonce
            self._depositors[label] = depositor
            self.roots.add(self.state_tree.root())

        logger.info("deposit #%d: value=%d leaf_index=%d", nonce, value, index)
        return Deposit(
            value=value,
            label=label,
            precommitment=precommitment,
            commitment=commitment,
            leaf_index=index,
            nonce=nonce,
            depositor=depositor,
        )

    def approve_label(self, label: int) -> int:
        """Admit a label into the ASP tree; returns its index there."""
        index = self.asp_tree.insert(label)
        logger.info("label approved at asp index %d", index)
        return index

    # ---------- queries ----------
    def is_known_root(self, root: int) -> bool:
        return root in self.roots

    def is_spent(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self._spent

    def state_proof(self, leaf_index: int) -> InclusionProof:
        return self.state_tree.generate_proof(leaf_index)

    def asp_proof_for_label(self, label: int) -> InclusionProof:
        index = self.asp_tree.index_of(label)
        if index is None:
            raise InvalidWithdrawal(f"label {label} is not in the ASP tree")
        return self.asp_tree.generate_proof(index)

    # ---------- withdrawals ----------
    def apply_withdrawal(self, payload: VerifierPayload, processooor: str, data: bytes) -> int:
        """
        Record a verified withdrawal: checks the public signals against local
        state, marks the nullifier spent and inserts the change commitment.
        The proof's context must bind `processooor` and `data` to this pool's
        scope. Returns the new commitment's leaf index.
        """
        if len(payload.public_signals) != WITHDRAW_PUBLIC_SIGNALS:
            raise InvalidArgument(
                f"withdrawal needs {WITHDRAW_PUBLIC_SIGNALS} public signals, got {len(payload.public_signals)}"
            )
        if payload.context != compute_context(processooor, data, self.scope):
            raise InvalidWithdrawal("context mismatch")
        if payload.state_tree_depth > self.max_tree_depth or payload.asp_tree_depth > self.max_tree_depth:
            raise InvalidWithdrawal("tree depth exceeds the pool maximum")

        with self._mutex:
            if not self.is_known_root(payload.state_root):
                raise InvalidWithdrawal("unknown state root")
            if payload.asp_root != self.asp_tree.root():
                raise InvalidWithdrawal("stale ASP root")
            nullifier_hash = payload.existing_nullifier_hash
            if nullifier_hash in self._spent:
                raise InvalidWithdrawal("nullifier already spent")

            index = self.state_tree.insert(payload.new_commitment_hash)
            self._spent.add(nullifier_hash)
            self.roots.add(self.state_tree.root())

        logger.info("withdrawal applied: value=%d change leaf=%d", payload.withdrawn_value, index)
        return index

    def apply_ragequit(self, payload: VerifierPayload, depositor: str) -> int:
        """
        Record a verified ragequit: the original depositor takes the full
        value back. Only the nullifier is recorded; the trees are untouched.
        Returns the spent nullifier hash.
        """
        if len(payload.public_signals) != RAGEQUIT_PUBLIC_SIGNALS:
            raise InvalidArgument(
                f"ragequit needs {RAGEQUIT_PUBLIC_SIGNALS} public signals, got {len(payload.public_signals)}"
            )
        label = payload.signal(_RQ_LABEL)
        nullifier_hash = payload.signal(_RQ_NULLIFIER_HASH)

        with self._mutex:
            owner = self._depositors.get(label)
            if owner is None:
                raise InvalidWithdrawal("label mismatch")
            if owner != depositor:
                raise InvalidWithdrawal("not original depositor")
            if nullifier_hash in self._spent:
                raise InvalidWithdrawal("nullifier already spent")
            self._spent.add(nullifier_hash)

        logger.info("ragequit applied: value=%d", payload.signal(0))
        return nullifier_hash

    def wind_down(self) -> None:
        self.dead = True
        logger.warning("pool wound down")

    def snapshot(self) -> dict:
        return {
            "state_size": self.state_tree.size(),
            "state_depth": self.state_tree.depth(),
            "state_root": self.state_tree.root(),
            "latest_known_root": self.roots.latest(),
            "asp_size": self.asp_tree.size(),
            "asp_depth": self.asp_tree.depth(),
            "asp_root": self.asp_tree.root(),
            "nonce": self.nonce,
            "spent_nullifiers": len(self._spent),
            "dead": self.dead,
        }


__all__ = ["Deposit", "RootHistory", "PoolState", "MAX_DEPOSIT_VALUE"]
