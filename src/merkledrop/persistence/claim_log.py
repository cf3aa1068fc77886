"""Append-only claim log — the audit trail of a distribution.

Every activation and every successful claim is appended as an immutable
entry. External indexers rebuild the full distribution history by
replaying the log, and a restarted distributor rebuilds its claimed set
from it.

The log can be persisted to a JSONL file (one JSON object per line).
Each entry carries a SHA-256 hash over its canonical JSON, checked on
load. Tampered or replayed entries are rejected.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from merkledrop.models.distribution import ClaimRecord


class EntryKind(str, enum.Enum):
    ACTIVATED = "activated"
    CLAIMED = "claimed"


def _entry_hash(sequence: int, kind: str, payload: dict[str, Any]) -> str:
    canonical = json.dumps(
        {"sequence": sequence, "kind": kind, "payload": payload},
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class LogEntry:
    """A single immutable log entry."""
    sequence: int
    kind: EntryKind
    payload: dict[str, Any]
    entry_hash: str

    @staticmethod
    def create(sequence: int, kind: EntryKind, payload: dict[str, Any]) -> LogEntry:
        return LogEntry(
            sequence=sequence,
            kind=kind,
            payload=payload,
            entry_hash=_entry_hash(sequence, kind.value, payload),
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "sequence": self.sequence,
                "kind": self.kind.value,
                "payload": self.payload,
                "entry_hash": self.entry_hash,
            },
            sort_keys=True,
            ensure_ascii=False,
        )


class ClaimLog:
    """Append-only log of activation and claim entries.

    Usage:
        log = ClaimLog(storage_path=Path("claims.jsonl"))
        log.record_activation(1000, block_height=0)
        log.record_claim(record)
        for record in log.claims():
            ...
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._entries: list[LogEntry] = []
        self._claimed: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def record_activation(self, total_genesis_tokens: int, block_height: Optional[int] = None) -> LogEntry:
        """Append the activation entry. Only one is allowed."""
        if self.activation is not None:
            raise ValueError("Log already contains an activation entry")
        payload: dict[str, Any] = {"total_genesis_tokens": total_genesis_tokens}
        if block_height is not None:
            payload["block_height"] = block_height
        return self._append(EntryKind.ACTIVATED, payload)

    def record_claim(self, record: ClaimRecord) -> LogEntry:
        """Append a claim entry.

        Raises ValueError if the recipient already has a claim entry.
        """
        if record.recipient in self._claimed:
            raise ValueError(f"Duplicate claim entry for {record.recipient}")
        return self._append(EntryKind.CLAIMED, record.to_payload())

    def entries(self, kind: Optional[EntryKind] = None) -> list[LogEntry]:
        if kind is None:
            return list(self._entries)
        return [e for e in self._entries if e.kind == kind]

    def claims(self) -> list[ClaimRecord]:
        return [ClaimRecord.from_payload(e.payload) for e in self.entries(EntryKind.CLAIMED)]

    def claimed_recipients(self) -> set[str]:
        return set(self._claimed)

    @property
    def activation(self) -> Optional[LogEntry]:
        for entry in self._entries:
            if entry.kind == EntryKind.ACTIVATED:
                return entry
        return None

    def total_distributed(self) -> int:
        """Sum of all tokens paid out to recipients and callers."""
        return sum(r.total for r in self.claims())

    @property
    def count(self) -> int:
        return len(self._entries)

    def _append(self, kind: EntryKind, payload: dict[str, Any]) -> LogEntry:
        entry = LogEntry.create(len(self._entries), kind, payload)
        # Disk before memory: a failed write leaves no trace of the entry.
        if self._storage_path:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(entry.to_json() + "\n")
        self._entries.append(entry)
        if kind == EntryKind.CLAIMED:
            self._claimed.add(payload["recipient"])
        return entry

    def _load_from_file(self, path: Path) -> None:
        """Load entries with integrity verification.

        Fail-closed: rejects hash mismatches, out-of-order sequence
        numbers, a second activation, and duplicate claims.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                sequence = data["sequence"]
                if sequence != len(self._entries):
                    raise ValueError(
                        f"Out-of-order entry (line {line_num}): sequence {sequence}, "
                        f"expected {len(self._entries)}"
                    )

                expected_hash = _entry_hash(sequence, data["kind"], data["payload"])
                if data["entry_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): stored hash "
                        f"{data['entry_hash']} != computed {expected_hash}"
                    )

                entry = LogEntry(
                    sequence=sequence,
                    kind=EntryKind(data["kind"]),
                    payload=data["payload"],
                    entry_hash=data["entry_hash"],
                )
                if entry.kind == EntryKind.ACTIVATED and self.activation is not None:
                    raise ValueError(f"Second activation entry (line {line_num})")
                if entry.kind == EntryKind.CLAIMED:
                    recipient = entry.payload["recipient"]
                    if recipient in self._claimed:
                        raise ValueError(
                            f"Duplicate claim on recovery (line {line_num}): {recipient}"
                        )
                    self._claimed.add(recipient)
                self._entries.append(entry)
