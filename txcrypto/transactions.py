"""
txmerkle - Transaction Records

A minimal transaction record and the LeafHasher that turns it into a leaf
digest. The serialization is fixed and documented:

    {tx_id}:{sender}->{recipient}:{amount:.2f}

Text fields may not be empty or contain ':' or '->', so the first ':' ends
the id, the last ':' starts the amount and the single '->' separates sender
from recipient. The amount always carries two decimal places.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Union

from .exceptions import InvalidRecordError
from .hashing import LeafHasher, sha256


Amount = Union[int, float, Decimal]

_FIELD_ALIASES = {
    "tx_id": ("id", "tx_id"),
    "sender": ("from", "sender"),
    "recipient": ("to", "recipient"),
    "amount": ("amount",),
}


@dataclass(frozen=True)
class Transaction:
    """A value transfer between two parties."""
    tx_id: str
    sender: str
    recipient: str
    amount: Amount

    def __post_init__(self):
        """Validate that the record serializes unambiguously."""
        for name in ("tx_id", "sender", "recipient"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise InvalidRecordError(f"{name} must be a string, got {type(value).__name__}")
            if not value:
                raise InvalidRecordError(f"{name} cannot be empty")
            if ":" in value or "->" in value:
                raise InvalidRecordError(f"{name} cannot contain ':' or '->': {value!r}")

        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, float, Decimal)):
            raise InvalidRecordError(f"amount must be a number, got {type(self.amount).__name__}")
        if isinstance(self.amount, Decimal):
            if not self.amount.is_finite():
                raise InvalidRecordError(f"amount must be finite, got {self.amount}")
        elif not math.isfinite(self.amount):
            raise InvalidRecordError(f"amount must be finite, got {self.amount}")

    def canonical_string(self) -> str:
        """Serialize the record in its fixed field order."""
        return f"{self.tx_id}:{self.sender}->{self.recipient}:{self.amount:.2f}"

    def digest(self) -> bytes:
        """SHA-256 of the canonical string."""
        return sha256(self.canonical_string().encode("utf-8"))

    def __str__(self) -> str:
        return self.canonical_string()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transaction":
        """
        Create a transaction from a mapping.

        Accepts the short keys ``id``/``from``/``to``/``amount`` or the
        attribute names.
        """
        values = {}
        for field_name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if alias in data:
                    values[field_name] = data[alias]
                    break
            else:
                raise InvalidRecordError(f"transaction is missing field '{aliases[0]}'")

        return cls(**values)


class TransactionLeafHasher(LeafHasher):
    """LeafHasher for Transaction records."""

    def hash(self, record: Transaction) -> bytes:
        if not isinstance(record, Transaction):
            raise InvalidRecordError(f"expected Transaction, got {type(record).__name__}")
        return record.digest()


def hash_transactions(transactions: Iterable[Transaction]) -> List[bytes]:
    """Map transactions to leaf digests, preserving order."""
    hasher = TransactionLeafHasher()
    return [hasher.hash(tx) for tx in transactions]
