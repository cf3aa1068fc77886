"""Caller incentive curve.

A third party who submits a claim on a recipient's behalf earns a share of
that recipient's allocation. The share is zero before the window opens,
grows linearly across it, and is the whole allocation from the window end
onward:

    height <  start          → 0
    height >= end            → allocation
    otherwise                → allocation * (height - start) // (end - start)

Integer floor division throughout; the recipient keeps the remainder of
the split, so the two shares always sum to the allocation exactly.
"""

from __future__ import annotations


def caller_amount(
    height: int,
    window_start: int,
    window_end: int,
    tokens_per_allocation: int,
) -> int:
    """Tokens owed to a third-party submitter at a given block height."""
    if window_end <= window_start:
        raise ValueError(
            f"Incentive window end ({window_end}) must be after start ({window_start})"
        )
    if tokens_per_allocation < 0:
        raise ValueError(
            f"Allocation must be non-negative, got {tokens_per_allocation}"
        )
    if height < window_start:
        return 0
    if height >= window_end:
        return tokens_per_allocation
    return tokens_per_allocation * (height - window_start) // (window_end - window_start)


def split_allocation(
    tokens_per_allocation: int,
    height: int,
    window_start: int,
    window_end: int,
) -> tuple[int, int]:
    """Split an allocation for a third-party claim.

    Returns (recipient_amount, caller_amount).
    """
    to_caller = caller_amount(height, window_start, window_end, tokens_per_allocation)
    return tokens_per_allocation - to_caller, to_caller
