"""Hashing and identity helpers shared by the tree builder and the verifier.

Leaves are keccak-256 of the raw 20 address bytes, which is what
``keccak256(abi.encodePacked(account))`` produces on chain. Digests are
raw 32-byte values internally and ``0x``-prefixed hex at the edges.
"""

from __future__ import annotations

from eth_utils import is_address, keccak, to_canonical_address, to_checksum_address

DIGEST_SIZE = 32


def normalize_address(address: str) -> str:
    """Return the checksum form of an address, or raise ValueError."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def leaf_hash(address: str) -> bytes:
    """Compute the genesis leaf for a recipient address."""
    return keccak(to_canonical_address(normalize_address(address)))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in sorted order.

    Nodes are compared as unsigned big-endian integers. For equal-length
    digests that is the same as comparing the bytes directly.
    """
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def parse_digest(value: str) -> bytes:
    """Parse a 0x-prefixed (or bare) 64-char hex string into 32 bytes."""
    clean = value.strip().removeprefix("0x").removeprefix("0X")
    try:
        raw = bytes.fromhex(clean)
    except ValueError as e:
        raise ValueError(f"Digest is not valid hex: {value!r}") from e
    if len(raw) != DIGEST_SIZE:
        raise ValueError(
            f"Digest must be {DIGEST_SIZE} bytes, got {len(raw)}: {value!r}"
        )
    return raw


def format_digest(digest: bytes) -> str:
    return "0x" + digest.hex()
