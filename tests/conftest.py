"""
Pytest configuration and fixtures for txmerkle tests.
"""

import hashlib
from typing import List

import pytest

from txcrypto.merkle import MerkleTree
from txcrypto.transactions import Transaction


def make_digests(count: int, prefix: str = "leaf") -> List[bytes]:
    """Distinct deterministic 32-byte digests."""
    return [hashlib.sha256(f"{prefix}-{i}".encode()).digest() for i in range(count)]


@pytest.fixture
def digest_factory():
    """Factory producing lists of distinct digests."""
    return make_digests


@pytest.fixture
def four_digests():
    return make_digests(4)


@pytest.fixture
def four_leaf_tree(four_digests):
    return MerkleTree.build(four_digests)


@pytest.fixture
def sample_transactions():
    """Eight transfers forming a small block."""
    return [
        Transaction(tx_id="tx001", sender="Alice", recipient="Bob", amount=100.50),
        Transaction(tx_id="tx002", sender="Bob", recipient="Charlie", amount=50.25),
        Transaction(tx_id="tx003", sender="Charlie", recipient="Dave", amount=75.00),
        Transaction(tx_id="tx004", sender="Dave", recipient="Eve", amount=25.75),
        Transaction(tx_id="tx005", sender="Eve", recipient="Frank", amount=150.00),
        Transaction(tx_id="tx006", sender="Frank", recipient="Grace", amount=80.50),
        Transaction(tx_id="tx007", sender="Grace", recipient="Henry", amount=45.25),
        Transaction(tx_id="tx008", sender="Henry", recipient="Alice", amount=200.00),
    ]


MARKERS = {
    "unit": "library and formatter tests under tests/unit",
    "cli": "tests that invoke the txmerkle command through CliRunner",
    "concurrency": "tests that read one tree from several threads",
}


def pytest_configure(config):
    for name, description in MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {description}")


def pytest_collection_modifyitems(config, items):
    """Mark tests by module and name so `-m cli` and friends select them."""
    for item in items:
        module = item.module.__name__.rsplit(".", 1)[-1]

        item.add_marker(pytest.mark.unit)
        if module == "test_cli":
            item.add_marker(pytest.mark.cli)
        if "concurrent" in item.name:
            item.add_marker(pytest.mark.concurrency)
