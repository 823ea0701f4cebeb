"""
Tests for the txmerkle Command Line Interface

Runs commands through click's CliRunner against small input files.
"""

import json
import logging
import os

import pytest
import yaml
from click.testing import CliRunner

import txcli.config
from txcli.inputs import load_leaf_digests
from txcli.main import LOGGER_NAMES, cli
from txcrypto import InvalidDigestError, InvalidRecordError, MerkleTree, Transaction


TRANSACTIONS = [
    {"id": "tx1", "from": "Alice", "to": "Bob", "amount": 100.0},
    {"id": "tx2", "from": "Bob", "to": "Charlie", "amount": 50.0},
    {"id": "tx3", "from": "Charlie", "to": "Dave", "amount": 75.0},
    {"id": "tx4", "from": "Dave", "to": "Eve", "amount": 25.0},
    {"id": "tx5", "from": "Eve", "to": "Frank", "amount": 12.5},
]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep user config files and TXMERKLE_ variables out of the tests."""
    monkeypatch.setattr(txcli.config, "CONFIG_SEARCH_PATHS", [])
    for key in list(os.environ):
        if key.startswith("TXMERKLE_"):
            monkeypatch.delenv(key)

    yield

    # Drop handlers bound to the runner's captured stderr
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.handlers = [h for h in logger.handlers if not getattr(h, "_txmerkle_cli", False)]
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def block_file(tmp_path):
    path = tmp_path / "block.yml"
    path.write_text(yaml.safe_dump({"leaves": TRANSACTIONS}))
    return path


@pytest.fixture
def expected_tree():
    return MerkleTree.from_transactions(Transaction.from_dict(tx) for tx in TRANSACTIONS)


class TestInputLoading:
    """Test leaf input files."""

    def test_mapping_with_leaves(self, block_file, expected_tree):
        assert load_leaf_digests(block_file) == list(expected_tree.leaves)

    def test_plain_list_of_hex_digests(self, tmp_path, expected_tree):
        path = tmp_path / "digests.json"
        path.write_text(json.dumps([leaf.hex() for leaf in expected_tree.leaves]))
        assert load_leaf_digests(path) == list(expected_tree.leaves)

    def test_mixed_entries(self, tmp_path, expected_tree):
        path = tmp_path / "mixed.yml"
        path.write_text(yaml.safe_dump([TRANSACTIONS[0], "0x" + expected_tree.leaf(1).hex()]))
        assert load_leaf_digests(path) == list(expected_tree.leaves[:2])

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_leaf_digests(path) == []

    def test_bad_entry(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("- 42\n")
        with pytest.raises(InvalidRecordError, match="Leaf entry 0"):
            load_leaf_digests(path)

    def test_bad_hex_entry(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("- 'abcd'\n")
        with pytest.raises(InvalidDigestError):
            load_leaf_digests(path)

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("leaves: [unclosed\n")
        with pytest.raises(InvalidRecordError, match="cannot parse leaf file"):
            load_leaf_digests(path)

    def test_mapping_without_leaves(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("transactions: []\n")
        with pytest.raises(InvalidRecordError, match="'leaves'"):
            load_leaf_digests(path)


class TestRootCommand:
    """Test the root command."""

    def test_cli_root_json(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["-o", "json", "root", str(block_file)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data == {
            "root": expected_tree.root_hex(),
            "leaf_count": 5,
            "height": 3,
        }

    def test_cli_root_table(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["root", str(block_file)])

        assert result.exit_code == 0, result.output
        assert expected_tree.root_hex() in result.stdout

    def test_cli_root_yaml(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["-o", "yaml", "root", str(block_file)])

        assert result.exit_code == 0, result.output
        assert yaml.safe_load(result.stdout)["root"] == expected_tree.root_hex()

    def test_cli_output_format_from_environment(self, runner, block_file, monkeypatch):
        monkeypatch.setenv("TXMERKLE_CLI_OUTPUT_FORMAT", "json")
        result = runner.invoke(cli, ["root", str(block_file)])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["leaf_count"] == 5

    def test_cli_invalid_config_value(self, runner, block_file, monkeypatch):
        monkeypatch.setenv("TXMERKLE_CLI_OUTPUT_FORMAT", "xml")
        result = runner.invoke(cli, ["root", str(block_file)])

        assert result.exit_code == 1
        assert "Invalid output format" in result.output

    def test_cli_empty_input(self, runner, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("leaves: []\n")
        result = runner.invoke(cli, ["root", str(path)])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "empty" in result.output

    @pytest.mark.parametrize("name,content", [
        ("block.yml", "leaves: [unclosed\n"),
        ("block.json", '{"leaves": ["abc",\n'),
    ])
    def test_cli_malformed_input(self, runner, tmp_path, name, content):
        path = tmp_path / name
        path.write_text(content)
        result = runner.invoke(cli, ["root", str(path)])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "cannot parse leaf file" in result.output

    def test_cli_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["root", str(tmp_path / "missing.yml")])
        assert result.exit_code == 2


class TestProveAndVerify:
    """Test proof generation and verification commands."""

    def _prove(self, runner, block_file, index):
        result = runner.invoke(cli, ["-o", "json", "prove", str(block_file), str(index)])
        assert result.exit_code == 0, result.output
        return json.loads(result.stdout)

    def test_cli_prove_json(self, runner, block_file, expected_tree):
        data = self._prove(runner, block_file, 1)
        proof = expected_tree.prove_inclusion(1)

        assert data["leaf"] == expected_tree.leaf(1).hex()
        assert data["root"] == expected_tree.root_hex()
        assert data["tree_size"] == 5
        assert data["steps"] == [
            {"level": level, "side": step.side.value, "sibling": step.sibling.hex()}
            for level, step in enumerate(proof, start=1)
        ]

    def test_cli_prove_table(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["prove", str(block_file), "4"])

        assert result.exit_code == 0, result.output
        for step in expected_tree.prove_inclusion(4):
            assert step.sibling.hex() in result.stdout

    def test_cli_prove_single_leaf(self, runner, tmp_path):
        path = tmp_path / "one.yml"
        path.write_text(yaml.safe_dump([TRANSACTIONS[0]]))
        result = runner.invoke(cli, ["prove", str(path), "0"])

        assert result.exit_code == 0, result.output
        assert "Empty proof" in result.stdout

    def test_cli_prove_negative_index(self, runner, block_file):
        result = runner.invoke(cli, ["prove", str(block_file), "-1"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "out of range" in result.output

    def test_cli_prove_out_of_range(self, runner, block_file):
        result = runner.invoke(cli, ["prove", str(block_file), "5"])

        assert result.exit_code == 1
        assert "out of range" in result.output

    @pytest.mark.parametrize("index", range(5))
    def test_cli_prove_then_verify(self, runner, block_file, index):
        data = self._prove(runner, block_file, index)
        args = ["verify", "--leaf", data["leaf"], "--root", data["root"]]
        for step in data["steps"]:
            args += ["--step", f"{step['side']}:{step['sibling']}"]

        result = runner.invoke(cli, args)
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "VALID"

    def test_cli_verify_wrong_leaf(self, runner, block_file, expected_tree):
        data = self._prove(runner, block_file, 1)
        args = ["-o", "json", "verify", "--leaf", expected_tree.leaf(0).hex(), "--root", data["root"]]
        for step in data["steps"]:
            args += ["--step", f"{step['side']}:{step['sibling']}"]

        result = runner.invoke(cli, args)
        assert result.exit_code == 1
        assert json.loads(result.stdout) == {"valid": False, "steps": 3}

    def test_cli_verify_single_leaf_without_steps(self, runner, expected_tree):
        leaf = expected_tree.leaf(0).hex()
        result = runner.invoke(cli, ["verify", "--leaf", leaf, "--root", leaf])

        assert result.exit_code == 0
        assert result.stdout.strip() == "VALID"

    @pytest.mark.parametrize("step", ["right", "up:" + "00" * 32, "left:abcd"])
    def test_cli_verify_bad_step(self, runner, expected_tree, step):
        leaf = expected_tree.leaf(0).hex()
        result = runner.invoke(cli, ["verify", "--leaf", leaf, "--root", leaf, "--step", step])
        assert result.exit_code == 2

    def test_cli_verify_bad_root(self, runner, expected_tree):
        leaf = expected_tree.leaf(0).hex()
        result = runner.invoke(cli, ["verify", "--leaf", leaf, "--root", "zz"])
        assert result.exit_code == 2


class TestInspectionCommands:
    """Test show, stats and hash-tx."""

    def test_cli_show(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["show", str(block_file), "--digest-chars", "8"])

        assert result.exit_code == 0, result.output
        assert f"└── {expected_tree.root_hex()[:8]}..." in result.stdout
        assert f"Root Hash: {expected_tree.root_hex()}" in result.stdout

    def test_cli_show_uses_configured_width(self, runner, block_file, expected_tree, monkeypatch):
        monkeypatch.setenv("TXMERKLE_DISPLAY_DIGEST_CHARS", "64")
        result = runner.invoke(cli, ["show", str(block_file)])

        assert result.exit_code == 0, result.output
        assert f"└── {expected_tree.root_hex()}..." in result.stdout

    def test_cli_stats(self, runner, block_file, expected_tree):
        result = runner.invoke(cli, ["-o", "json", "stats", str(block_file)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["root_hash"] == expected_tree.root_hex()
        assert data["node_count"] == 11
        assert data["padded_levels"] == [0, 1]
        assert data["structure_valid"] is True

    def test_cli_hash_tx(self, runner):
        result = runner.invoke(cli, [
            "-o", "json", "hash-tx", "--id", "tx1", "--from", "Alice", "--to", "Bob", "--amount", "100",
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["transaction"] == "tx1:Alice->Bob:100.00"
        assert data["digest"] == Transaction("tx1", "Alice", "Bob", 100).digest().hex()

    def test_cli_hash_tx_rejects_delimiter(self, runner):
        result = runner.invoke(cli, [
            "hash-tx", "--id", "tx:1", "--from", "Alice", "--to", "Bob", "--amount", "1",
        ])

        assert result.exit_code == 1
        assert "cannot contain" in result.output

    def test_cli_verbose_logging(self, runner, block_file):
        result = runner.invoke(cli, ["-vv", "root", str(block_file)])
        assert result.exit_code == 0, result.output
