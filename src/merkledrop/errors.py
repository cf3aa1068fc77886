"""Distribution errors.

Every rejection is raised synchronously from the operation that caused it
and leaves no partial state behind. Callers can catch DistributionError
to handle all of them, or a subclass for a specific reason.
"""


class DistributionError(Exception):
    """Base class for all rejected distribution operations."""


class InvalidConfiguration(DistributionError):
    """Construction parameters are unusable (token, count, or window)."""


class AlreadyStarted(DistributionError):
    """Activation attempted after the distribution has started."""


class NotStarted(DistributionError):
    """Claim attempted before the distribution has been activated."""


class ZeroFunding(DistributionError):
    """Activation attempted with no tokens in custody."""


class AlreadyClaimed(DistributionError):
    """The recipient's allocation has already been claimed."""


class InvalidProof(DistributionError):
    """The proof does not rebuild the genesis root for this recipient."""


class OutsideIncentiveWindow(DistributionError):
    """A third party submitted a claim before the incentive window opened."""


class TransferFailed(DistributionError):
    """The token ledger rejected a transfer; the claim was rolled back."""


class PartialTransfer(TransferFailed):
    """Some transfers of a claim reached the chain before another failed.

    Tokens have left custody, so the claim stays consumed. ``sent`` lists
    the (to, amount) pairs that were broadcast.
    """

    def __init__(self, message: str, sent: list[tuple[str, int]]) -> None:
        super().__init__(message)
        self.sent = sent
