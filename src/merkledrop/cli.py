"""Command-line tools for building genesis trees and checking claims.

Usage:
    python -m merkledrop.cli build-tree --recipients recipients.csv --out tree.json
    python -m merkledrop.cli proof --tree tree.json --address 0xabc...
    python -m merkledrop.cli verify --root 0x... --address 0xabc... --proof 0x... 0x...
    python -m merkledrop.cli preview --config distribution.json --total-genesis-tokens 1000 --height 150
    python -m merkledrop.cli replay --log claims.jsonl
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path

from merkledrop.crypto.hashing import leaf_hash, normalize_address, parse_digest
from merkledrop.crypto.merkle import GenesisTree, verify_proof
from merkledrop.config import DistributionSettings
from merkledrop.distribution.incentive import caller_amount
from merkledrop.persistence.claim_log import ClaimLog


def read_recipients(path: Path) -> list[str]:
    """Read addresses from a CSV (first column) or a plain list, one per line.

    A header row and blank lines are skipped.
    """
    recipients: list[str] = []
    with path.open(newline="", encoding="utf-8") as f:
        for row in csv.reader(f):
            if not row or not row[0].strip():
                continue
            value = row[0].strip()
            if value.lower() in ("address", "recipient"):
                continue
            recipients.append(normalize_address(value))
    return recipients


def cmd_build_tree(args: argparse.Namespace) -> int:
    try:
        tree = GenesisTree(read_recipients(args.recipients))
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    published = tree.to_dict()
    output = json.dumps(published, indent=2)
    if args.out:
        args.out.write_text(output + "\n", encoding="utf-8")
        print(f"Merkle root: {published['merkle_root']}")
        print(f"Recipients: {tree.leaf_count}")
        print(f"Wrote {args.out}")
    else:
        print(output)
    return 0


def cmd_proof(args: argparse.Namespace) -> int:
    data = json.loads(args.tree.read_text(encoding="utf-8"))
    try:
        address = normalize_address(args.address)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    proof = data["proofs"].get(address)
    if proof is None:
        print(f"Not a genesis recipient: {address}", file=sys.stderr)
        return 1
    print(json.dumps({"address": address, "proof": proof}, indent=2))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    try:
        root = parse_digest(args.root)
        proof = [parse_digest(p) for p in args.proof]
        leaf = leaf_hash(args.address)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    if verify_proof(proof, root, leaf):
        print("valid")
        return 0
    print("invalid")
    return 1


def cmd_preview(args: argparse.Namespace) -> int:
    try:
        settings = DistributionSettings.from_file(args.config)
        if settings.total_recipients <= 0:
            raise ValueError(
                f"total_recipients must be positive, got {settings.total_recipients}"
            )
        allocation = args.total_genesis_tokens // settings.total_recipients
        to_caller = caller_amount(
            args.height,
            settings.incentive_window_start,
            settings.incentive_window_end,
            allocation,
        )
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps({
        "height": args.height,
        "tokens_per_allocation": allocation,
        "caller_amount": to_caller,
        "recipient_amount": allocation - to_caller,
    }, indent=2))
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    if not args.log.exists():
        print(f"No such log: {args.log}", file=sys.stderr)
        return 1
    try:
        log = ClaimLog(storage_path=args.log)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    activation = log.activation
    claims = log.claims()
    print(json.dumps({
        "total_genesis_tokens": activation.payload["total_genesis_tokens"] if activation else 0,
        "claims": len(claims),
        "third_party_claims": sum(1 for c in claims if c.is_third_party),
        "paid_to_recipients": sum(c.recipient_amount for c in claims),
        "paid_to_callers": sum(c.caller_amount for c in claims),
        "total_distributed": log.total_distributed(),
    }, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merkledrop",
        description="Merkle genesis distribution tooling",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command")

    # build-tree
    p_build = sub.add_parser("build-tree", help="Build the genesis tree from a recipient list")
    p_build.add_argument("--recipients", type=Path, required=True, help="CSV or newline list of addresses")
    p_build.add_argument("--out", type=Path, help="Write tree JSON here (default: stdout)")

    # proof
    p_proof = sub.add_parser("proof", help="Print a recipient's proof from a tree file")
    p_proof.add_argument("--tree", type=Path, required=True, help="Tree JSON from build-tree")
    p_proof.add_argument("--address", required=True, help="Recipient address")

    # verify
    p_verify = sub.add_parser("verify", help="Check a proof against a root")
    p_verify.add_argument("--root", required=True, help="Genesis root (hex)")
    p_verify.add_argument("--address", required=True, help="Recipient address")
    p_verify.add_argument("--proof", nargs="*", default=[], help="Sibling digests (hex), leaf first")

    # preview
    p_preview = sub.add_parser("preview", help="Preview a third-party caller's incentive")
    p_preview.add_argument("--config", type=Path, required=True, help="Distribution settings JSON")
    p_preview.add_argument("--total-genesis-tokens", type=int, required=True, help="Funded total")
    p_preview.add_argument("--height", type=int, required=True, help="Block height")

    # replay
    p_replay = sub.add_parser("replay", help="Summarize a claim log")
    p_replay.add_argument("--log", type=Path, required=True, help="Claim log JSONL")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "build-tree": cmd_build_tree,
        "proof": cmd_proof,
        "verify": cmd_verify,
        "preview": cmd_preview,
        "replay": cmd_replay,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
