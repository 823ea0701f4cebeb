"""
txmerkle - Merkle Tree Core

This package provides:
- SHA-256 leaf and internal-node hashing
- Transaction records and their leaf digests
- Immutable Merkle tree construction with odd-level duplication
- Inclusion proof generation and total, non-raising verification

Dependencies:
- hashlib: SHA-256
- hmac: constant-time digest comparison
"""

from .exceptions import (
    MerkleError,
    EmptyInputError,
    IndexOutOfRangeError,
    InvalidDigestError,
    InvalidRecordError,
)
from .hashing import (
    DIGEST_SIZE,
    BytesLeafHasher,
    LeafHasher,
    MerkleHasher,
    digest_from_hex,
    ensure_digest,
    is_digest,
    sha256,
)
from .transactions import (
    Transaction,
    TransactionLeafHasher,
    hash_transactions,
)
from .merkle import (
    MAX_PROOF_DEPTH,
    InternalNode,
    LeafNode,
    MerkleProof,
    MerkleTree,
    ProofStep,
    Side,
    build_merkle_tree,
    build_transaction_merkle_tree,
    pad_level,
    pair_level,
    verify_batch,
    verify_proof,
)

__version__ = "0.1.0"
__all__ = [
    # Exceptions
    "MerkleError",
    "EmptyInputError",
    "IndexOutOfRangeError",
    "InvalidDigestError",
    "InvalidRecordError",

    # Hashing
    "DIGEST_SIZE",
    "BytesLeafHasher",
    "LeafHasher",
    "MerkleHasher",
    "digest_from_hex",
    "ensure_digest",
    "is_digest",
    "sha256",

    # Records
    "Transaction",
    "TransactionLeafHasher",
    "hash_transactions",

    # Tree and proofs
    "MAX_PROOF_DEPTH",
    "InternalNode",
    "LeafNode",
    "MerkleProof",
    "MerkleTree",
    "ProofStep",
    "Side",
    "build_merkle_tree",
    "build_transaction_merkle_tree",
    "pad_level",
    "pair_level",
    "verify_batch",
    "verify_proof",
]
