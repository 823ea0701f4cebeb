#!/usr/bin/env python3
"""
txmerkle - Command Line Interface

Build Merkle trees over transaction files, print root digests, generate
inclusion proofs and verify them.
"""

import functools
import logging
import sys
import traceback
from typing import Any, Dict, List, Optional, Tuple

import click

from txcrypto import (
    MerkleError,
    MerkleTree,
    Side,
    Transaction,
    digest_from_hex,
    verify_proof,
)

from .config import OUTPUT_FORMATS, ConfigurationError, ConfigurationManager
from .inputs import load_leaf_digests
from .output import OutputFormatter

LOGGER_NAMES = ('txcli', 'txcrypto')


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.output_format: str = "table"
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('txcli')

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }

        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        for name in LOGGER_NAMES:
            logger = logging.getLogger(name)
            # Replace the handler from a previous invocation; stderr may have changed
            logger.handlers = [h for h in logger.handlers if not getattr(h, '_txmerkle_cli', False)]

            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            handler._txmerkle_cli = True
            logger.addHandler(handler)
            logger.setLevel(level)

    def load_config(self, profile: Optional[str] = None):
        """Load configuration from defaults, files and environment."""
        self.config = ConfigurationManager(config_file=self.config_file, profile=profile)
        self.config.load()

        errors = self.config.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

        self.logger.info(f"Configuration sources: {', '.join(self.config.get_sources())}")

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value with fallback to default."""
        if self.config is None:
            return default
        return self.config.get(key, default)

    def output(self, data: Any, headers: Optional[List[str]] = None):
        """Output data in the selected format."""
        click.echo(OutputFormatter(self.output_format).format(data, headers))


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator reporting library errors as CLI errors."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (MerkleError, ConfigurationError, OSError) as e:
            ctx = click.get_current_context().find_object(CLIContext)

            click.echo(f"Error: {e}", err=True)
            if ctx and ctx.verbose >= 2:
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)

            sys.exit(1)

    return wrapper


def parse_step(value: str) -> Tuple[bytes, Side]:
    """Parse a proof step given as SIDE:HEX."""
    side_text, sep, digest_text = value.partition(':')
    if not sep:
        raise click.BadParameter(f"expected SIDE:HEX, got {value!r}", param_hint="--step")

    try:
        side = Side(side_text.strip().lower())
    except ValueError:
        raise click.BadParameter(f"side must be 'left' or 'right', got {side_text!r}",
                                 param_hint="--step")

    try:
        return digest_from_hex(digest_text), side
    except MerkleError as e:
        raise click.BadParameter(str(e), param_hint="--step")


def load_tree(ctx: CLIContext, input_file: str) -> MerkleTree:
    """Build a tree from an input file."""
    digests = load_leaf_digests(input_file)
    tree = MerkleTree.build(digests)
    ctx.logger.info(f"Built tree over {tree.leaf_count} leaves, root {tree.root_hex()}")
    return tree


def proof_rows(proof) -> List[Dict[str, Any]]:
    return [
        {"level": level, "side": step.side.value, "sibling": step.sibling.hex()}
        for level, step in enumerate(proof, start=1)
    ]


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              help='Path to configuration file')
@click.option('--profile',
              help='Configuration profile (quiet, debug)')
@click.option('--output-format', '-o',
              type=click.Choice(OUTPUT_FORMATS),
              default=None,
              help='Output format')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(package_name='txmerkle', prog_name='txmerkle')
@pass_context
def cli(ctx: CLIContext, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], verbose: int):
    """
    Merkle tree commitments and inclusion proofs for transaction sets.

    Examples:
        txmerkle root block.yml
        txmerkle prove block.yml 2
        txmerkle verify --leaf HEX --root HEX --step left:HEX --step right:HEX
    """
    ctx.config_file = config_file
    ctx.verbose = verbose

    try:
        ctx.load_config(profile)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    ctx.verbose = max(verbose, ctx.get_config('cli.verbose', 0))
    ctx.output_format = output_format or ctx.get_config('cli.output_format', 'table')
    ctx.setup_logging()

    ctx.logger.debug("CLI initialized with context")


@cli.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@pass_context
@handle_cli_error
def root(ctx: CLIContext, input_file: str):
    """Print the root digest of the tree built from INPUT_FILE."""
    tree = load_tree(ctx, input_file)
    ctx.output({
        "root": tree.root_hex(),
        "leaf_count": tree.leaf_count,
        "height": tree.height,
    })


@cli.command(context_settings={'ignore_unknown_options': True})
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('index', type=int)
@pass_context
@handle_cli_error
def prove(ctx: CLIContext, input_file: str, index: int):
    """Print the inclusion proof for leaf INDEX of INPUT_FILE."""
    tree = load_tree(ctx, input_file)
    proof = tree.prove_inclusion(index)

    summary = {
        "leaf_index": index,
        "leaf": tree.leaf(index).hex(),
        "root": tree.root_hex(),
        "tree_size": tree.leaf_count,
    }
    rows = proof_rows(proof)

    if ctx.output_format == 'table':
        ctx.output(summary)
        click.echo()
        ctx.output(rows if rows else "Empty proof (single-leaf tree)")
    else:
        summary["steps"] = rows
        ctx.output(summary)


@cli.command()
@click.option('--leaf', 'leaf_hex', required=True, help='Leaf digest (hex)')
@click.option('--root', 'root_hex', required=True, help='Claimed root digest (hex)')
@click.option('--step', 'steps', multiple=True,
              help='Proof step as SIDE:HEX, leaf level first (repeatable)')
@pass_context
@handle_cli_error
def verify(ctx: CLIContext, leaf_hex: str, root_hex: str, steps: Tuple[str, ...]):
    """Verify an inclusion proof. Exits with status 1 if it does not hold."""
    try:
        leaf = digest_from_hex(leaf_hex)
    except MerkleError as e:
        raise click.BadParameter(str(e), param_hint="--leaf")
    try:
        claimed_root = digest_from_hex(root_hex)
    except MerkleError as e:
        raise click.BadParameter(str(e), param_hint="--root")

    proof = [parse_step(step) for step in steps]
    valid = verify_proof(leaf, proof, claimed_root)
    ctx.logger.info(f"Verified {len(proof)}-step proof: {valid}")

    if ctx.output_format == 'table':
        click.echo("VALID" if valid else "INVALID")
    else:
        ctx.output({"valid": valid, "steps": len(proof)})

    sys.exit(0 if valid else 1)


@cli.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--digest-chars', type=click.IntRange(1, 64), default=None,
              help='Hex characters shown per node')
@pass_context
@handle_cli_error
def show(ctx: CLIContext, input_file: str, digest_chars: Optional[int]):
    """Draw the tree built from INPUT_FILE."""
    tree = load_tree(ctx, input_file)
    chars = digest_chars or ctx.get_config('display.digest_chars', 16)

    for line in tree.render_tree(digest_chars=chars):
        click.echo(line)
    click.echo()
    click.echo(f"Root Hash: {tree.root_hex()}")


@cli.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@pass_context
@handle_cli_error
def stats(ctx: CLIContext, input_file: str):
    """Print statistics and a structure check for the tree from INPUT_FILE."""
    tree = load_tree(ctx, input_file)
    is_valid, errors = tree.validate_structure()

    data = tree.get_statistics()
    data["structure_valid"] = is_valid
    if errors:
        data["structure_errors"] = errors
    ctx.output(data)


@cli.command(name='hash-tx')
@click.option('--id', 'tx_id', required=True, help='Transaction id')
@click.option('--from', 'sender', required=True, help='Sender')
@click.option('--to', 'recipient', required=True, help='Recipient')
@click.option('--amount', type=float, required=True, help='Amount')
@pass_context
@handle_cli_error
def hash_tx(ctx: CLIContext, tx_id: str, sender: str, recipient: str, amount: float):
    """Print the leaf digest of a single transaction."""
    tx = Transaction(tx_id=tx_id, sender=sender, recipient=recipient, amount=amount)
    ctx.output({
        "transaction": tx.canonical_string(),
        "digest": tx.digest().hex(),
    })


def main():
    """Console script entry point."""
    cli(prog_name='txmerkle')


if __name__ == '__main__':
    main()
