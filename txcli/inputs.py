"""
Leaf input loading for the txmerkle CLI.

An input file is YAML or JSON holding either a list of entries or a mapping
with a ``leaves`` list. Each entry is a hex digest string or a transaction
mapping with ``id``, ``from``, ``to`` and ``amount``.
"""

import logging
from pathlib import Path
from typing import Any, List, Union

import yaml

from txcrypto import InvalidRecordError, Transaction, digest_from_hex

logger = logging.getLogger(__name__)


def parse_leaf_entry(entry: Any, position: int) -> bytes:
    """Turn one input entry into a leaf digest."""
    if isinstance(entry, str):
        return digest_from_hex(entry)
    if isinstance(entry, dict):
        return Transaction.from_dict(entry).digest()
    raise InvalidRecordError(
        f"Leaf entry {position} must be a hex digest or a transaction mapping, "
        f"got {type(entry).__name__}"
    )


def load_leaf_digests(path: Union[str, Path]) -> List[bytes]:
    """
    Load leaf digests from a YAML or JSON file.

    Args:
        path: Input file path

    Returns:
        Leaf digests in file order
    """
    path = Path(path)
    with open(path, 'r') as f:
        try:
            # YAML is a superset of JSON
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidRecordError(f"{path}: cannot parse leaf file: {e}") from e

    if isinstance(data, dict):
        if 'leaves' not in data:
            raise InvalidRecordError(f"{path}: mapping input must contain a 'leaves' list")
        data = data['leaves']

    if data is None:
        data = []
    if not isinstance(data, list):
        raise InvalidRecordError(f"{path}: expected a list of leaves, got {type(data).__name__}")

    digests = [parse_leaf_entry(entry, i) for i, entry in enumerate(data)]
    logger.info(f"Loaded {len(digests)} leaves from {path}")
    return digests
