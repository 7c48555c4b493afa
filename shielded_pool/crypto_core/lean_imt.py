"""
Lean incremental Merkle tree (LeanIMT).

Append-only binary hash tree with dynamic depth. Unlike a zero-padded Merkle
tree, a node without a right sibling is copied to its parent unchanged; only
a node that has a right sibling contributes `H(left, right)`. This is what the
withdrawal circuit and the on-chain tree compute, so every root produced here
must match theirs exactly.

Storage is an arena of per-level lists: `_levels[l][i]` is node (l, i).
Level l holds ceil(size / 2**l) entries.

Example, five leaves a..e:

    level 3:                 H(H(H(a,b),H(c,d)), e)
    level 2:       H(H(a,b),H(c,d))                 e
    level 1:    H(a,b)        H(c,d)                e
    level 0:   a     b      c      d                e

`e` has no sibling at levels 0..2 and climbs unhashed.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from shielded_pool.logging_config import get_logger

from .errors import AccumulatorCorrupted, IndexOutOfRange, InvalidArgument, RootMismatch
from .field import MAX_TREE_DEPTH, ZERO, require_field
from .hasher import Hasher
from .rwlock import ReadWriteLock

logger = get_logger("lean_imt")


class InclusionProof(BaseModel):
    """
    Membership proof for one leaf.

    `siblings[i]` is the sibling of the path node at level i, or 0 when that
    node has no sibling (it propagated unchanged). `len(siblings)` equals the
    tree depth at the time the proof was generated.
    """

    model_config = ConfigDict(frozen=True)

    leaf: int = Field(..., ge=0, description="Leaf value (field element).")
    index: int = Field(..., ge=0, description="Leaf position in insertion order.")
    siblings: List[int] = Field(default_factory=list, description="Sibling per level, 0 = no sibling.")
    root: int = Field(..., ge=0, description="Accumulator root the proof was generated against.")

    @property
    def depth(self) -> int:
        return len(self.siblings)


def tree_depth(size: int) -> int:
    """0 for size <= 1, else ceil(log2(size))."""
    if size <= 1:
        return 0
    return (size - 1).bit_length()


def verify_proof(leaf: int, index: int, siblings: Sequence[int], depth: int, hasher: Hasher) -> int:
    """
    Recompute the root from a proof, without any tree.

    A zero sibling means "no sibling at this level": the node propagates
    unchanged. Hashing it with a zero placeholder instead yields a different,
    wrong root. Returns the recomputed root; comparing it is up to the caller.
    """
    if depth < 0 or depth > len(siblings):
        raise InvalidArgument(f"depth {depth} does not fit {len(siblings)} siblings")
    node = leaf
    idx = index
    for i in range(depth):
        sibling = siblings[i]
        if sibling != ZERO:
            node = hasher.hash2(sibling, node) if idx & 1 else hasher.hash2(node, sibling)
        idx >>= 1
    return node


def pad_siblings(siblings: Sequence[int], max_depth: int = MAX_TREE_DEPTH) -> List[int]:
    """Append zeros until the list is `max_depth` long (the circuit's fixed width)."""
    if len(siblings) > max_depth:
        raise InvalidArgument(f"{len(siblings)} siblings exceed max depth {max_depth}")
    return list(siblings) + [ZERO] * (max_depth - len(siblings))


class LeanAccumulator:
    """
    One append-only LeanIMT instance (e.g. the state tree or the ASP tree).

    Not safe for concurrent inserts by itself: mutations take the write side of
    a writer-preferring lock and queries take the read side.
    """

    def __init__(self, hasher: Hasher, name: str = "tree", max_depth: int = MAX_TREE_DEPTH):
        self.hasher = hasher
        self.name = name
        self.max_depth = max_depth
        self._levels: List[List[int]] = [[]]
        self._positions: Dict[int, int] = {}
        self._lock = ReadWriteLock()

    def __repr__(self) -> str:
        return f"LeanAccumulator({self.name!r}, size={len(self._levels[0])}, depth={tree_depth(len(self._levels[0]))})"

    # ---------- queries ----------
    def size(self) -> int:
        with self._lock.read():
            return len(self._levels[0])

    def depth(self) -> int:
        with self._lock.read():
            return tree_depth(len(self._levels[0]))

    def root(self) -> int:
        with self._lock.read():
            return self._root_unlocked()

    def _root_unlocked(self) -> int:
        size = len(self._levels[0])
        if size == 0:
            return ZERO
        return self._levels[tree_depth(size)][0]

    def has(self, leaf: int) -> bool:
        with self._lock.read():
            return leaf in self._positions

    def index_of(self, leaf: int) -> Optional[int]:
        with self._lock.read():
            return self._positions.get(leaf)

    def leaves(self) -> List[int]:
        with self._lock.read():
            return list(self._levels[0])

    # ---------- mutation ----------
    def insert(self, leaf: int) -> int:
        """Append `leaf`, recompute its path to the root and return its index."""
        with self._lock.write():
            return self._insert_unlocked(leaf)

    def insert_many(self, leaves: Iterable[int]) -> List[int]:
        """Insert several leaves under a single write lock; stops at the first rejected leaf."""
        with self._lock.write():
            return [self._insert_unlocked(leaf) for leaf in leaves]

    def _insert_unlocked(self, leaf: int) -> int:
        require_field(leaf, what=f"{self.name} leaf")
        if leaf == ZERO:
            raise InvalidArgument(f"{self.name}: leaf cannot be zero")
        if leaf in self._positions:
            raise InvalidArgument(f"{self.name}: leaf already exists at index {self._positions[leaf]}")

        index = len(self._levels[0])
        new_depth = tree_depth(index + 1)
        if new_depth > self.max_depth:
            raise InvalidArgument(f"{self.name}: tree is full (max depth {self.max_depth})")

        # hash the whole path first so a failing hasher leaves the tree untouched
        path: List[Tuple[int, int, int]] = []
        node = leaf
        idx = index
        for level in range(new_depth + 1):
            path.append((level, idx, node))
            if level == new_depth:
                break
            if idx & 1:
                node = self.hasher.hash2(self._levels[level][idx - 1], node)
            # a left child with no right sibling climbs unchanged
            idx >>= 1

        for level, idx, _value in path:
            self._check_slot(level, idx)
        while len(self._levels) <= new_depth:
            self._levels.append([])
        for level, idx, value in path:
            row = self._levels[level]
            if idx == len(row):
                row.append(value)
            else:
                row[idx] = value
        self._positions[leaf] = index
        logger.debug("%s: inserted index=%d depth=%d root=%d", self.name, index, new_depth, node)
        if new_depth > tree_depth(index):
            logger.info("%s: depth grew to %d at size %d", self.name, new_depth, index + 1)
        return index

    def _check_slot(self, level: int, idx: int) -> None:
        """Only the last node of a level may be overwritten, and only one may be appended."""
        row_len = len(self._levels[level]) if level < len(self._levels) else 0
        if idx not in (row_len, row_len - 1):
            raise AccumulatorCorrupted(f"{self.name}: non-contiguous write at ({level}, {idx}) with {row_len} nodes")

    # ---------- proofs ----------
    def generate_proof(self, index: int) -> InclusionProof:
        with self._lock.read():
            size = len(self._levels[0])
            if index < 0 or index >= size:
                raise IndexOutOfRange(f"{self.name}: leaf index {index} out of range (size {size})")

            siblings: List[int] = []
            idx = index
            for level in range(tree_depth(size)):
                row = self._levels[level]
                sib_idx = idx ^ 1
                siblings.append(row[sib_idx] if sib_idx < len(row) else ZERO)
                idx >>= 1

            return InclusionProof(
                leaf=self._levels[0][index],
                index=index,
                siblings=siblings,
                root=self._root_unlocked(),
            )

    def verify_proof(self, proof: InclusionProof) -> bool:
        return verify_proof(proof.leaf, proof.index, proof.siblings, proof.depth, self.hasher) == self.root()

    def check_proof(self, proof: InclusionProof) -> int:
        """Recompute the proof's root; raise RootMismatch unless it is this tree's root."""
        computed = verify_proof(proof.leaf, proof.index, proof.siblings, proof.depth, self.hasher)
        current = self.root()
        if computed != current:
            raise RootMismatch(current, computed, what=f"{self.name} root")
        return computed


__all__ = [
    "InclusionProof",
    "LeanAccumulator",
    "tree_depth",
    "verify_proof",
    "pad_siblings",
]
