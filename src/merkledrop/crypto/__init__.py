"""Leaf hashing, the genesis tree, and proof verification."""

from merkledrop.crypto.hashing import leaf_hash, normalize_address
from merkledrop.crypto.merkle import GenesisTree, verify_proof

__all__ = ["GenesisTree", "leaf_hash", "normalize_address", "verify_proof"]
