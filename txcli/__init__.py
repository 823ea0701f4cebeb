"""
txmerkle Command Line Interface

Commands for building trees from transaction files, printing roots,
generating inclusion proofs and verifying them.
"""

__version__ = "0.1.0"
