"""
Merkle Tree Exceptions for txmerkle

This module defines custom exceptions for tree construction and proof generation.
Proof verification never raises; it reports failure as False.
"""


class MerkleError(Exception):
    """Base exception for all Merkle tree errors."""
    pass


class EmptyInputError(MerkleError):
    """Raised when a tree is built from an empty leaf sequence."""
    pass


class IndexOutOfRangeError(MerkleError, IndexError):
    """Raised when a proof is requested for a leaf that does not exist."""
    pass


class InvalidDigestError(MerkleError, ValueError):
    """Raised when a value is not a 32-byte digest."""
    pass


class InvalidRecordError(MerkleError, ValueError):
    """Raised when a record cannot be serialized unambiguously for hashing."""
    pass
