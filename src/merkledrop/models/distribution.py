"""Distribution models: genesis configuration and claim records.

Amounts are integer token base units. Integer division is part of the
contract: the per-recipient allocation is floored and the remainder stays
in custody permanently.

Invariants enforced here:
- Configuration is immutable once built.
- incentive_window_end > incentive_window_start > height at configuration.
- total_recipients > 0.
- total_genesis_tokens is written exactly once.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from merkledrop.crypto.hashing import DIGEST_SIZE, format_digest
from merkledrop.errors import AlreadyStarted, InvalidConfiguration

if TYPE_CHECKING:
    from merkledrop.ledger.base import TokenLedger


class DistributionPhase(str, enum.Enum):
    """Lifecycle of a distribution.

    State machine:
        NOT_STARTED → STARTED   (activate, exactly once)
    """
    NOT_STARTED = "not_started"
    STARTED = "started"


@dataclass(frozen=True)
class DistributionConfig:
    """Genesis parameters fixed at construction."""
    token: "TokenLedger"
    merkle_root: bytes
    total_recipients: int
    incentive_window_start: int
    incentive_window_end: int

    def validate(self, current_height: int) -> None:
        """Raise InvalidConfiguration if the parameters cannot be deployed."""
        if self.token is None:
            raise InvalidConfiguration("Token ledger reference is required")
        if not isinstance(self.merkle_root, bytes) or len(self.merkle_root) != DIGEST_SIZE:
            raise InvalidConfiguration(
                f"Merkle root must be {DIGEST_SIZE} bytes"
            )
        if self.total_recipients <= 0:
            raise InvalidConfiguration(
                f"Recipient count must be positive, got {self.total_recipients}"
            )
        if self.incentive_window_start <= current_height:
            raise InvalidConfiguration(
                f"Incentive window start ({self.incentive_window_start}) must be "
                f"after the current height ({current_height})"
            )
        if self.incentive_window_end <= self.incentive_window_start:
            raise InvalidConfiguration(
                f"Incentive window end ({self.incentive_window_end}) must be "
                f"after its start ({self.incentive_window_start})"
            )


@dataclass
class DistributionState:
    """Mutable state of a distribution. One per deployment."""
    total_genesis_tokens: int = 0
    claimed: set[str] = field(default_factory=set)

    @property
    def phase(self) -> DistributionPhase:
        if self.total_genesis_tokens > 0:
            return DistributionPhase.STARTED
        return DistributionPhase.NOT_STARTED

    @property
    def started(self) -> bool:
        return self.phase == DistributionPhase.STARTED

    def start(self, funded: int) -> None:
        if self.started:
            raise AlreadyStarted(
                f"Distribution already started with {self.total_genesis_tokens} tokens"
            )
        self.total_genesis_tokens = funded


@dataclass(frozen=True)
class ClaimRecord:
    """Published record of one successful claim.

    Invariant: recipient_amount + caller_amount == the allocation at the
    time of the claim.
    """
    recipient: str
    submitter: str
    recipient_amount: int
    caller_amount: int
    block_height: int

    @property
    def total(self) -> int:
        return self.recipient_amount + self.caller_amount

    @property
    def is_third_party(self) -> bool:
        return self.submitter != self.recipient

    def to_payload(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "submitter": self.submitter,
            "recipient_amount": self.recipient_amount,
            "caller_amount": self.caller_amount,
            "block_height": self.block_height,
        }

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> ClaimRecord:
        return ClaimRecord(
            recipient=payload["recipient"],
            submitter=payload["submitter"],
            recipient_amount=int(payload["recipient_amount"]),
            caller_amount=int(payload["caller_amount"]),
            block_height=int(payload["block_height"]),
        )


def describe_root(config: DistributionConfig) -> str:
    """Hex form of the configured root, for logs and CLI output."""
    return format_digest(config.merkle_root)
