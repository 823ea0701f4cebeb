"""
txmerkle - Merkle Tree Implementation

This module builds an immutable binary hash tree over an ordered sequence of
32-byte leaf digests, generates compact inclusion proofs and verifies them.

Tree shape:
- Leaf digests are wrapped as-is, never re-hashed.
- Internal digest = SHA256(left.digest || right.digest).
- Any level with an odd number of nodes greater than one duplicates its last
  node before pairing. A level of one node is the root.

Construction and proof generation both go through ``padded_length`` so the
two always agree on the shape of every level.

The duplication rule means a tree over [a, b, c] has the same root as a tree
over [a, b, c, c]. Callers that need to tell those apart must commit to the
leaf count separately.
"""

import hmac
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from .exceptions import EmptyInputError, IndexOutOfRangeError, InvalidDigestError
from .hashing import LeafHasher, MerkleHasher, ensure_digest, is_digest
from .transactions import Transaction, TransactionLeafHasher


# No tree over fewer than 2**256 leaves needs a longer proof.
MAX_PROOF_DEPTH = 256


class Side(Enum):
    """Position of a proof sibling relative to the node on the path."""
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def from_flag(cls, is_right: bool) -> "Side":
        """Map the boolean convention (True = sibling on the right)."""
        return cls.RIGHT if is_right else cls.LEFT

    @property
    def is_right(self) -> bool:
        return self is Side.RIGHT

    def flipped(self) -> "Side":
        return Side.LEFT if self is Side.RIGHT else Side.RIGHT


class ProofStep(NamedTuple):
    """One level of an inclusion proof."""
    sibling: bytes
    side: Side


# Nodes compare by identity; compare digests to compare content.
@dataclass(frozen=True, eq=False)
class LeafNode:
    """A leaf wrapping one input digest."""
    digest: bytes

    def __post_init__(self):
        if not is_digest(self.digest):
            raise InvalidDigestError("Leaf digest must be 32 bytes")


@dataclass(frozen=True, eq=False)
class InternalNode:
    """A node owning two children; its digest is derived from theirs."""
    left: "MerkleNode" = field(repr=False)
    right: "MerkleNode" = field(repr=False)
    digest: bytes

    @classmethod
    def from_children(cls, left: "MerkleNode", right: "MerkleNode",
                      hasher: MerkleHasher) -> "InternalNode":
        """Create the parent of ``left`` and ``right``."""
        return cls(left=left, right=right, digest=hasher.hash_internal(left.digest, right.digest))


MerkleNode = Union[LeafNode, InternalNode]


def padded_length(size: int) -> int:
    """Length of a level of ``size`` nodes after applying the duplication rule."""
    if size > 1 and size % 2 == 1:
        return size + 1
    return size


def pad_level(nodes: Sequence[MerkleNode]) -> List[MerkleNode]:
    """Return the level with its last node duplicated when the rule applies."""
    padded = list(nodes)
    if padded_length(len(padded)) > len(padded):
        padded.append(padded[-1])
    return padded


def node_at(level: Sequence[MerkleNode], position: int) -> MerkleNode:
    """Node at ``position`` in the padded view of ``level`` without copying it."""
    if not 0 <= position < padded_length(len(level)):
        raise IndexError(f"position {position} outside level of {len(level)} nodes")
    return level[min(position, len(level) - 1)]


def pair_level(nodes: Sequence[MerkleNode], hasher: MerkleHasher) -> List[InternalNode]:
    """
    Build the next level up by pairing nodes left to right.

    Args:
        nodes: Current level, at least two nodes
        hasher: Hasher combining child digests

    Returns:
        Parent level, half the padded length
    """
    if len(nodes) < 2:
        raise ValueError("A level needs at least two nodes to pair")

    padded = pad_level(nodes)
    return [
        InternalNode.from_children(padded[i], padded[i + 1], hasher)
        for i in range(0, len(padded), 2)
    ]


@dataclass(frozen=True)
class MerkleProof:
    """
    Inclusion proof for one leaf.

    ``steps`` runs from the leaf level up to, not including, the root.
    """
    steps: Tuple[ProofStep, ...]
    leaf_index: int
    tree_size: int

    def __post_init__(self):
        """Validate proof structure."""
        steps = []
        for i, entry in enumerate(self.steps):
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ValueError(f"Proof step at level {i} must be a (sibling, side) pair")
            sibling, side = entry
            if not isinstance(side, Side):
                raise ValueError(f"Proof side at level {i} must be a Side, got {side!r}")
            sibling = ensure_digest(sibling, what=f"Proof sibling at level {i}")
            steps.append(ProofStep(sibling, side))

        object.__setattr__(self, "steps", tuple(steps))

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __getitem__(self, index):
        return self.steps[index]

    @property
    def hashes(self) -> List[bytes]:
        return [step.sibling for step in self.steps]

    @property
    def sides(self) -> List[Side]:
        return [step.side for step in self.steps]

    def get_path_length(self) -> int:
        """Get length of proof path."""
        return len(self.steps)

    def is_valid_for_tree_size(self, tree_size: int) -> bool:
        """Check if the path length matches a tree of ``tree_size`` leaves."""
        return self.get_path_length() == math.ceil(math.log2(max(1, tree_size)))


class MerkleTree:
    """
    Immutable Merkle tree over an ordered sequence of leaf digests.

    Levels are kept bottom-up, one list per level, unpadded. Level 0 holds the
    leaves and the last level holds only the root. Nothing mutates a tree
    after construction, so any number of threads may read it concurrently.
    """

    def __init__(self, leaf_digests: Sequence[bytes]):
        """
        Build a tree from leaf digests.

        Args:
            leaf_digests: Ordered 32-byte digests, at least one

        Raises:
            EmptyInputError: If no digests are given
            InvalidDigestError: If any element is not a 32-byte digest
        """
        self.hasher = MerkleHasher()
        self.logger = logging.getLogger(__name__)

        digests = list(leaf_digests)
        if not digests:
            raise EmptyInputError("Cannot build Merkle tree from an empty leaf sequence")

        start_time = time.perf_counter()

        leaves = [
            LeafNode(ensure_digest(digest, what=f"Leaf digest at index {i}"))
            for i, digest in enumerate(digests)
        ]

        levels: List[List[MerkleNode]] = [leaves]
        while len(levels[-1]) > 1:
            levels.append(pair_level(levels[-1], self.hasher))

        self._levels: Tuple[Tuple[MerkleNode, ...], ...] = tuple(tuple(level) for level in levels)

        self._leaf_index: Dict[bytes, int] = {}
        for i, leaf in enumerate(leaves):
            self._leaf_index.setdefault(leaf.digest, i)

        self.construction_time = time.perf_counter() - start_time
        self.logger.debug(
            f"Tree built: leaves={len(leaves)}, height={self.height}, "
            f"nodes={self.node_count} in {self.construction_time * 1000:.3f}ms"
        )

    @classmethod
    def build(cls, leaf_digests: Sequence[bytes]) -> "MerkleTree":
        """Build a tree from an ordered sequence of leaf digests."""
        return cls(leaf_digests)

    @classmethod
    def from_records(cls, records: Iterable[Any], leaf_hasher: LeafHasher) -> "MerkleTree":
        """Hash each record with ``leaf_hasher`` and build a tree over the digests."""
        return cls([leaf_hasher.hash(record) for record in records])

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> "MerkleTree":
        """Build a tree over transaction digests."""
        return cls.from_records(transactions, TransactionLeafHasher())

    # Accessors

    @property
    def root(self) -> MerkleNode:
        return self._levels[-1][0]

    def root_digest(self) -> bytes:
        """Get root digest of tree."""
        return self.root.digest

    def root_hex(self) -> str:
        """Get root digest as 64 lowercase hex characters."""
        return self.root.digest.hex()

    @property
    def leaves(self) -> Tuple[bytes, ...]:
        return tuple(leaf.digest for leaf in self._levels[0])

    @property
    def leaf_nodes(self) -> Tuple[MerkleNode, ...]:
        return self._levels[0]

    @property
    def levels(self) -> Tuple[Tuple[bytes, ...], ...]:
        """Digests per level, leaves first, without padding."""
        return tuple(tuple(node.digest for node in level) for level in self._levels)

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0])

    @property
    def height(self) -> int:
        """Number of pairing levels; 0 for a single leaf."""
        return len(self._levels) - 1

    @property
    def node_count(self) -> int:
        """Distinct nodes in the tree. Duplicated nodes are counted once."""
        return sum(len(level) for level in self._levels)

    def leaf(self, index: int) -> bytes:
        """Digest of the leaf at ``index``."""
        self._check_index(index)
        return self._levels[0][index].digest

    def index_of(self, leaf_digest: bytes) -> Optional[int]:
        """Index of the first leaf with ``leaf_digest``, or None."""
        if not is_digest(leaf_digest):
            return None
        return self._leaf_index.get(bytes(leaf_digest))

    def __len__(self) -> int:
        return self.leaf_count

    def __repr__(self) -> str:
        return f"MerkleTree(leaves={self.leaf_count}, root={self.root_hex()})"

    # Proofs

    def prove_inclusion(self, index: int) -> MerkleProof:
        """
        Generate the inclusion proof for the leaf at ``index``.

        Args:
            index: Leaf position, 0 <= index < leaf_count

        Returns:
            MerkleProof with one step per level below the root

        Raises:
            IndexOutOfRangeError: If index is not a valid leaf position
        """
        self._check_index(index)

        steps = []
        position = index
        for level in self._levels[:-1]:
            sibling = node_at(level, position ^ 1)
            side = Side.RIGHT if position % 2 == 0 else Side.LEFT
            steps.append(ProofStep(sibling.digest, side))
            position //= 2

        return MerkleProof(steps=tuple(steps), leaf_index=index, tree_size=self.leaf_count)

    def prove_batch(self, indices: Iterable[int]) -> Dict[int, MerkleProof]:
        """Generate proofs for several leaves."""
        return {index: self.prove_inclusion(index) for index in indices}

    def prove_all(self) -> List[MerkleProof]:
        """Generate a proof for every leaf, in leaf order."""
        return [self.prove_inclusion(i) for i in range(self.leaf_count)]

    def verify(self, index: int, proof: Optional[MerkleProof] = None) -> bool:
        """
        Verify that leaf ``index`` is included under this tree's root.

        Generates the proof when none is given.
        """
        if proof is None:
            proof = self.prove_inclusion(index)
        return verify_proof(self.leaf(index), proof, self.root_digest())

    def _check_index(self, index: Any):
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexOutOfRangeError(f"Leaf index must be an integer, got {type(index).__name__}")
        if not 0 <= index < self.leaf_count:
            raise IndexOutOfRangeError(
                f"Leaf index {index} out of range for tree with {self.leaf_count} leaves"
            )

    # Inspection

    def render_tree(self, digest_chars: int = 16) -> List[str]:
        """
        Render the tree as text, root first.

        Each node shows the first ``digest_chars`` hex characters of its digest.
        The right child is listed above the left child.
        """
        lines: List[str] = []
        self._render_node(self.root, "", True, digest_chars, lines)
        return lines

    def _render_node(self, node: MerkleNode, prefix: str, is_last: bool,
                     digest_chars: int, lines: List[str]):
        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{node.digest.hex()[:digest_chars]}...")

        if isinstance(node, InternalNode):
            child_prefix = prefix + ("    " if is_last else "│   ")
            self._render_node(node.right, child_prefix, False, digest_chars, lines)
            self._render_node(node.left, child_prefix, True, digest_chars, lines)

    def get_statistics(self) -> Dict[str, Any]:
        """Get tree statistics."""
        return {
            "root_hash": self.root_hex(),
            "leaf_count": self.leaf_count,
            "height": self.height,
            "node_count": self.node_count,
            "padded_levels": [
                level_number for level_number, level in enumerate(self._levels)
                if padded_length(len(level)) != len(level)
            ],
            "proof_length": self.height,
            "construction_time_ms": self.construction_time * 1000,
        }

    def validate_structure(self) -> Tuple[bool, List[str]]:
        """
        Recompute every internal digest and check the shape of every level.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        for i, leaf in enumerate(self._levels[0]):
            if not isinstance(leaf, LeafNode):
                errors.append(f"Leaf {i} is not a leaf node")

        for level_number in range(1, len(self._levels)):
            below = self._levels[level_number - 1]
            level = self._levels[level_number]

            expected_size = padded_length(len(below)) // 2
            if len(level) != expected_size:
                errors.append(
                    f"Level {level_number} has {len(level)} nodes, expected {expected_size}"
                )
                continue

            for j, node in enumerate(level):
                if not isinstance(node, InternalNode):
                    errors.append(f"Node {j} at level {level_number} is not an internal node")
                    continue
                if node.left is not node_at(below, 2 * j) or node.right is not node_at(below, 2 * j + 1):
                    errors.append(f"Node {j} at level {level_number} has wrong children")
                expected_hash = self.hasher.hash_internal(node.left.digest, node.right.digest)
                if node.digest != expected_hash:
                    errors.append(f"Internal node hash mismatch at level {level_number}, position {j}")

        if len(self._levels[-1]) != 1:
            errors.append(f"Top level has {len(self._levels[-1])} nodes, expected 1")

        return len(errors) == 0, errors


# Verification

_hasher = MerkleHasher()


def _coerce_side(side: Any) -> Optional[Side]:
    if isinstance(side, Side):
        return side
    if isinstance(side, bool):
        return Side.from_flag(side)
    return None


def _coerce_steps(proof: Any) -> Optional[List[Tuple[bytes, Side]]]:
    """Normalize untrusted proof input, or None if it is malformed."""
    if isinstance(proof, MerkleProof):
        raw = proof.steps
    elif isinstance(proof, (list, tuple)):
        raw = proof
    else:
        return None

    if len(raw) > MAX_PROOF_DEPTH:
        return None

    steps = []
    for entry in raw:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            return None
        sibling, side = entry[0], entry[1]
        side = _coerce_side(side)
        if not is_digest(sibling) or side is None:
            return None
        steps.append((bytes(sibling), side))

    return steps


def verify_proof(leaf_digest: Any, proof: Any, claimed_root: Any) -> bool:
    """
    Verify an inclusion proof without needing the tree.

    All three inputs are treated as untrusted. Malformed input of any kind
    yields False; this function does not raise.

    Args:
        leaf_digest: 32-byte digest of the leaf
        proof: MerkleProof, or a list/tuple of (sibling, side) pairs where side
            is a Side or a bool (True = sibling on the right)
        claimed_root: Expected 32-byte root digest

    Returns:
        True if the proof reconstructs ``claimed_root``
    """
    if not is_digest(leaf_digest) or not is_digest(claimed_root):
        return False

    steps = _coerce_steps(proof)
    if steps is None:
        return False

    current_hash = bytes(leaf_digest)
    for sibling_hash, side in steps:
        if side is Side.RIGHT:
            current_hash = _hasher.hash_internal(current_hash, sibling_hash)
        else:
            current_hash = _hasher.hash_internal(sibling_hash, current_hash)

    return hmac.compare_digest(current_hash, bytes(claimed_root))


def verify_batch(items: Iterable[Tuple[bytes, Any]], claimed_root: bytes) -> List[bool]:
    """
    Verify several (leaf_digest, proof) pairs against one root.

    An item that is not a pair counts as a failed verification.
    """
    results = []
    for item in items:
        if isinstance(item, (list, tuple)) and len(item) == 2:
            results.append(verify_proof(item[0], item[1], claimed_root))
        else:
            results.append(False)
    return results


# Convenience functions

def build_merkle_tree(leaf_digests: Sequence[bytes]) -> Tuple[MerkleTree, bytes]:
    """
    Convenience function to build a tree from leaf digests.

    Returns:
        Tuple of (tree, root_digest)
    """
    tree = MerkleTree.build(leaf_digests)
    return tree, tree.root_digest()


def build_transaction_merkle_tree(transactions: Sequence[Transaction]) -> Tuple[MerkleTree, bytes]:
    """
    Convenience function to build a tree from transactions.

    Returns:
        Tuple of (tree, root_digest)
    """
    tree = MerkleTree.from_transactions(transactions)
    return tree, tree.root_digest()
