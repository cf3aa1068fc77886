"""Sorted-pair Merkle tree over recipient addresses, and proof verification.

Each parent is ``keccak(min(a, b) ++ max(a, b))``, so a proof is only the
list of sibling digests with no left/right markers. The verifier and the
tree builder must agree on this rule or no proof will ever verify.

Leaves are sorted before construction so the root does not depend on the
order recipients were listed in. An unpaired node at the end of a level is
carried up unchanged rather than hashed with itself.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from merkledrop.crypto.hashing import (
    DIGEST_SIZE,
    format_digest,
    hash_pair,
    leaf_hash,
    normalize_address,
)


def verify_proof(proof: Sequence[bytes], root: bytes, leaf: bytes) -> bool:
    """Return True if ``proof`` rebuilds ``root`` starting from ``leaf``.

    An empty proof is only valid for a single-leaf tree (leaf == root).
    Any element that is not a 32-byte digest makes the proof invalid.
    """
    computed = leaf
    for sibling in proof:
        if not isinstance(sibling, bytes) or len(sibling) != DIGEST_SIZE:
            return False
        computed = hash_pair(computed, sibling)
    return computed == root


class GenesisTree:
    """Merkle tree of the genesis recipient set.

    Usage:
        tree = GenesisTree(["0xaaa...", "0xbbb...", "0xccc..."])
        root = tree.root
        proof = tree.proof("0xbbb...")
        assert verify_proof(proof, root, leaf_hash("0xbbb..."))
    """

    def __init__(self, recipients: Iterable[str]) -> None:
        normalized = [normalize_address(r) for r in recipients]
        if not normalized:
            raise ValueError("Genesis tree needs at least one recipient")

        by_leaf: dict[bytes, str] = {}
        for address in normalized:
            leaf = leaf_hash(address)
            if leaf in by_leaf:
                raise ValueError(f"Duplicate recipient: {address}")
            by_leaf[leaf] = address

        leaves = sorted(by_leaf)
        self._index = {by_leaf[leaf]: i for i, leaf in enumerate(leaves)}
        self._levels: list[list[bytes]] = [leaves]

        current = leaves
        while len(current) > 1:
            parents: list[bytes] = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    parents.append(hash_pair(current[i], current[i + 1]))
                else:
                    parents.append(current[i])
            self._levels.append(parents)
            current = parents

    @property
    def root(self) -> bytes:
        return self._levels[-1][0]

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0])

    @property
    def recipients(self) -> list[str]:
        """Recipients in leaf order."""
        return sorted(self._index, key=self._index.__getitem__)

    def __contains__(self, address: str) -> bool:
        try:
            return normalize_address(address) in self._index
        except ValueError:
            return False

    def proof(self, address: str) -> list[bytes]:
        """Sibling path for a recipient, leaf level first.

        Raises KeyError if the address is not in the tree.
        """
        normalized = normalize_address(address)
        if normalized not in self._index:
            raise KeyError(f"Not a genesis recipient: {normalized}")

        path: list[bytes] = []
        idx = self._index[normalized]
        for level in self._levels[:-1]:
            sibling = idx ^ 1
            if sibling < len(level):
                path.append(level[sibling])
            idx //= 2
        return path

    def to_dict(self) -> dict:
        """Publishable form: root, count, and hex proofs per recipient."""
        return {
            "merkle_root": format_digest(self.root),
            "total_recipients": self.leaf_count,
            "proofs": {
                address: [format_digest(p) for p in self.proof(address)]
                for address in self.recipients
            },
        }
