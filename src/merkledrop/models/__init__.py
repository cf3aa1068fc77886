"""Data models for the genesis distribution."""

from merkledrop.models.distribution import (
    ClaimRecord,
    DistributionConfig,
    DistributionPhase,
    DistributionState,
)

__all__ = [
    "ClaimRecord",
    "DistributionConfig",
    "DistributionPhase",
    "DistributionState",
]
