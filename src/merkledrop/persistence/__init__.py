"""Persistence — the append-only claim log."""

from merkledrop.persistence.claim_log import ClaimLog, EntryKind, LogEntry

__all__ = ["ClaimLog", "EntryKind", "LogEntry"]
