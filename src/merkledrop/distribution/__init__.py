"""Distribution engine: the claim state machine and its incentive curve."""

from merkledrop.distribution.distributor import MerkleDistributor
from merkledrop.distribution.incentive import caller_amount, split_allocation

__all__ = ["MerkleDistributor", "caller_amount", "split_allocation"]
