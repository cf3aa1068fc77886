"""Merkledrop — one-time Merkle distribution of a token pool with caller incentives."""

from merkledrop.distribution.distributor import MerkleDistributor
from merkledrop.errors import (
    AlreadyClaimed,
    AlreadyStarted,
    DistributionError,
    InvalidConfiguration,
    InvalidProof,
    NotStarted,
    OutsideIncentiveWindow,
    PartialTransfer,
    TransferFailed,
    ZeroFunding,
)
from merkledrop.models.distribution import ClaimRecord, DistributionConfig

__all__ = [
    "AlreadyClaimed",
    "AlreadyStarted",
    "ClaimRecord",
    "DistributionConfig",
    "DistributionError",
    "InvalidConfiguration",
    "InvalidProof",
    "MerkleDistributor",
    "NotStarted",
    "OutsideIncentiveWindow",
    "PartialTransfer",
    "TransferFailed",
    "ZeroFunding",
]
