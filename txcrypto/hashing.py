"""
txmerkle - Hashing Primitives

This module provides the single hash function used throughout the tree
(SHA-256), digest validation helpers, the internal-node combination rule and
the LeafHasher interface that maps application records to leaf digests.

There is no domain separation: a leaf digest is the plain SHA-256 of the
record bytes and an internal digest is SHA256(left || right).
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from .exceptions import InvalidDigestError


DIGEST_SIZE = 32


def sha256(data: bytes) -> bytes:
    """Return the SHA-256 digest of ``data``."""
    return hashlib.sha256(data).digest()


def is_digest(value: Any) -> bool:
    """Check whether value is a 32-byte digest."""
    return isinstance(value, (bytes, bytearray)) and len(value) == DIGEST_SIZE


def ensure_digest(value: Any, what: str = "digest") -> bytes:
    """
    Validate a digest and return it as immutable bytes.

    Args:
        value: Candidate digest
        what: Name used in the error message

    Returns:
        The digest as bytes

    Raises:
        InvalidDigestError: If value is not 32 bytes
    """
    if not isinstance(value, (bytes, bytearray)):
        raise InvalidDigestError(f"{what} must be bytes, got {type(value).__name__}")
    if len(value) != DIGEST_SIZE:
        raise InvalidDigestError(f"{what} must be {DIGEST_SIZE} bytes, got {len(value)}")
    return bytes(value)


def digest_from_hex(text: str) -> bytes:
    """
    Parse a hex-encoded digest.

    Accepts 64 hex characters with an optional ``0x`` prefix.

    Raises:
        InvalidDigestError: If text is not a valid hex digest
    """
    if not isinstance(text, str):
        raise InvalidDigestError(f"hex digest must be a string, got {type(text).__name__}")

    cleaned = text.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]

    if len(cleaned) != DIGEST_SIZE * 2:
        raise InvalidDigestError(f"hex digest must be {DIGEST_SIZE * 2} characters, got {len(cleaned)}")

    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise InvalidDigestError(f"invalid hex digest {text!r}: {e}") from e


class MerkleHasher:
    """
    Handles all hashing operations for the Merkle tree.

    Leaf digests produced elsewhere are used as-is by the tree; this class
    only hashes raw record bytes and combines child digests.
    """

    def hash_leaf(self, data: bytes) -> bytes:
        """
        Hash raw record bytes into a leaf digest.

        Format: SHA256(data)

        Args:
            data: Serialized record

        Returns:
            32-byte leaf digest
        """
        return sha256(bytes(data))

    def hash_internal(self, left_hash: bytes, right_hash: bytes) -> bytes:
        """
        Hash internal node from children.

        Format: SHA256(left_hash || right_hash)

        Args:
            left_hash: Hash of left child (32 bytes)
            right_hash: Hash of right child (32 bytes)

        Returns:
            32-byte parent digest
        """
        if not is_digest(left_hash) or not is_digest(right_hash):
            raise InvalidDigestError("Child hashes must be 32 bytes")

        return sha256(bytes(left_hash) + bytes(right_hash))


class LeafHasher(ABC):
    """Maps an application record to its 32-byte leaf digest."""

    @abstractmethod
    def hash(self, record: Any) -> bytes:
        """Return the digest of ``record``. Must be deterministic."""


class BytesLeafHasher(LeafHasher):
    """Leaf hasher for records that are already serialized to bytes."""

    def __init__(self, hasher: Optional[MerkleHasher] = None):
        self.hasher = hasher or MerkleHasher()

    def hash(self, record: Union[bytes, bytearray]) -> bytes:
        if not isinstance(record, (bytes, bytearray)):
            raise TypeError(f"BytesLeafHasher expects bytes, got {type(record).__name__}")
        return self.hasher.hash_leaf(record)
