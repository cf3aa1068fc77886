"""Merkle distributor — the one-shot claim state machine.

A fixed pool of tokens is split equally between the recipients committed
to by the genesis Merkle root. Each recipient can be paid exactly once.
Anyone may submit a recipient's proof; a third-party submitter earns a
share of that allocation according to the incentive curve.

State machine:
    NOT_STARTED → STARTED   (activate: records the funded balance, once)

Claim order of operations:
    1. Guards: started, not yet claimed, proof valid, window open for
       third parties. Nothing is mutated until all of them pass.
    2. Mark the recipient claimed.
    3. Transfer caller share, then recipient share, inside one token
       ledger transaction.
    4. On any failure in 3, undo the flag, the transfers, and any nested
       claims made during them, then re-raise. A PartialTransfer means
       tokens already left custody, so the claim stays consumed and is
       published before the error is re-raised.
    5. Once the outermost call has committed, append every ClaimRecord to
       the log, then notify observers. An observer error is logged and
       does not turn a committed claim into a failure.

The flag is set before any transfer, so a claim re-entered from inside a
transfer sees the recipient as claimed and is rejected.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence

from merkledrop.crypto.hashing import leaf_hash, normalize_address
from merkledrop.crypto.merkle import verify_proof
from merkledrop.distribution.incentive import caller_amount, split_allocation
from merkledrop.errors import (
    AlreadyClaimed,
    AlreadyStarted,
    DistributionError,
    InvalidProof,
    NotStarted,
    OutsideIncentiveWindow,
    PartialTransfer,
    TransferFailed,
    ZeroFunding,
)
from merkledrop.models.distribution import (
    ClaimRecord,
    DistributionConfig,
    DistributionPhase,
    DistributionState,
    describe_root,
)
from merkledrop.persistence.claim_log import ClaimLog

logger = logging.getLogger(__name__)

ClaimObserver = Callable[[ClaimRecord], None]


class MerkleDistributor:
    """Distributes a funded token pool to the genesis recipients.

    Usage:
        config = DistributionConfig(token, root, 10, 100, 200)
        distributor = MerkleDistributor(config, custody_address, current_height=50)
        token.transfer(funder, custody_address, 1000)
        distributor.activate()
        record = distributor.claim(alice, proof, caller=alice, height=60)
    """

    def __init__(
        self,
        config: DistributionConfig,
        address: str,
        current_height: int,
        claim_log: Optional[ClaimLog] = None,
    ) -> None:
        config.validate(current_height)
        self._config = config
        self._address = normalize_address(address)
        self._state = DistributionState()
        self._log = claim_log if claim_log is not None else ClaimLog()
        self._observers: List[ClaimObserver] = []
        self._lock = threading.RLock()
        # Records of the claim in progress and any nested claims, published
        # only when the outermost claim commits.
        self._pending: Optional[List[ClaimRecord]] = None

    @classmethod
    def from_log(
        cls,
        config: DistributionConfig,
        address: str,
        claim_log: ClaimLog,
        deployed_height: int,
    ) -> MerkleDistributor:
        """Rebuild a distributor from its claim log.

        deployed_height is the height the distribution was originally
        configured at, so the window ordering check is the same one that
        ran at deployment.
        """
        distributor = cls(config, address, deployed_height, claim_log=claim_log)
        activation = claim_log.activation
        if activation is not None:
            distributor._state.start(int(activation.payload["total_genesis_tokens"]))
        distributor._state.claimed = claim_log.claimed_recipients()
        logger.info(
            "Restored distribution %s: %d claims replayed",
            describe_root(config), len(distributor._state.claimed),
        )
        return distributor

    # ------------------------------------------------------------------
    # State readers
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def merkle_root(self) -> bytes:
        return self._config.merkle_root

    @property
    def total_recipients(self) -> int:
        return self._config.total_recipients

    @property
    def incentive_window_start(self) -> int:
        return self._config.incentive_window_start

    @property
    def incentive_window_end(self) -> int:
        return self._config.incentive_window_end

    @property
    def total_genesis_tokens(self) -> int:
        return self._state.total_genesis_tokens

    @property
    def phase(self) -> DistributionPhase:
        return self._state.phase

    @property
    def is_started(self) -> bool:
        return self._state.started

    @property
    def tokens_per_allocation(self) -> int:
        """Equal share per recipient. The remainder stays in custody."""
        return self._state.total_genesis_tokens // self._config.total_recipients

    @property
    def claim_log(self) -> ClaimLog:
        return self._log

    def is_claimed(self, recipient: str) -> bool:
        return normalize_address(recipient) in self._state.claimed

    def preview_caller_amount(self, height: int) -> int:
        """What a third party would earn by submitting a claim at this height."""
        return caller_amount(
            height,
            self._config.incentive_window_start,
            self._config.incentive_window_end,
            self.tokens_per_allocation,
        )

    def add_observer(self, observer: ClaimObserver) -> None:
        """Register a callback invoked with every committed ClaimRecord."""
        self._observers.append(observer)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def activate(self, height: Optional[int] = None) -> int:
        """Start the distribution with whatever is in custody.

        Returns the recorded total_genesis_tokens.
        """
        with self._lock:
            if self._state.started:
                raise AlreadyStarted(
                    f"Distribution already started with "
                    f"{self._state.total_genesis_tokens} tokens"
                )
            balance = self._config.token.balance_of(self._address)
            if balance <= 0:
                raise ZeroFunding(f"No tokens in custody at {self._address}")

            # Log first: if the append fails the distribution stays NOT_STARTED.
            self._log.record_activation(balance, block_height=height)
            self._state.start(balance)
            logger.info(
                "Distribution %s started: %d tokens, %d recipients, %d per allocation",
                describe_root(self._config), balance,
                self._config.total_recipients, self.tokens_per_allocation,
            )
            return balance

    def claim(
        self,
        recipient: str,
        proof: Sequence[bytes],
        caller: str,
        height: int,
    ) -> ClaimRecord:
        """Claim a recipient's allocation.

        Args:
            recipient: Genesis recipient being paid.
            proof: Sibling digests from the recipient's leaf to the root.
            caller: Identity submitting the claim.
            height: Current block height.

        Returns:
            The ClaimRecord published for this claim.

        Raises:
            NotStarted, AlreadyClaimed, InvalidProof,
            OutsideIncentiveWindow, TransferFailed.
            PartialTransfer (a TransferFailed) when tokens already left
            custody; the claim stays consumed and is still published.
        """
        recipient = normalize_address(recipient)
        caller = normalize_address(caller)

        with self._lock:
            if not self._state.started:
                raise NotStarted("Distribution has not been activated")
            if recipient in self._state.claimed:
                logger.warning("Rejected claim for %s: already claimed", recipient)
                raise AlreadyClaimed(f"Allocation for {recipient} already claimed")
            if not verify_proof(proof, self._config.merkle_root, leaf_hash(recipient)):
                logger.warning("Rejected claim for %s: invalid proof", recipient)
                raise InvalidProof(f"Proof does not match genesis root for {recipient}")

            allocation = self.tokens_per_allocation
            if caller == recipient:
                recipient_amount, to_caller = allocation, 0
            else:
                if height < self._config.incentive_window_start:
                    logger.warning(
                        "Rejected claim for %s by %s at height %d: window opens at %d",
                        recipient, caller, height, self._config.incentive_window_start,
                    )
                    raise OutsideIncentiveWindow(
                        f"Third-party claims open at height "
                        f"{self._config.incentive_window_start}, current height {height}"
                    )
                recipient_amount, to_caller = split_allocation(
                    allocation,
                    height,
                    self._config.incentive_window_start,
                    self._config.incentive_window_end,
                )

            outermost = self._pending is None
            if outermost:
                self._pending = []
            partial: Optional[PartialTransfer] = None
            try:
                try:
                    record = self._apply(recipient, caller, recipient_amount, to_caller, height)
                except PartialTransfer as e:
                    partial = e
                published = self._pending
            finally:
                if outermost:
                    self._pending = None

            if outermost:
                self._publish(published)
            if partial is not None:
                raise partial
            return record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        recipient: str,
        caller: str,
        recipient_amount: int,
        to_caller: int,
        height: int,
    ) -> ClaimRecord:
        """Flag, transfer, and queue the record; undo everything on failure."""
        mark = len(self._pending)
        self._state.claimed.add(recipient)
        record = ClaimRecord(
            recipient=recipient,
            submitter=caller,
            recipient_amount=recipient_amount,
            caller_amount=to_caller,
            block_height=height,
        )
        try:
            with self._config.token.transaction():
                if to_caller > 0:
                    self._transfer(caller, to_caller)
                if recipient_amount > 0:
                    self._transfer(recipient, recipient_amount)
        except PartialTransfer as e:
            # Tokens are out of custody; reopening the claim would pay twice.
            logger.error(
                "Claim for %s partially transferred %s before failing; kept as claimed",
                recipient, e.sent,
            )
            self._pending.append(record)
            raise
        except BaseException:
            for nested in self._pending[mark:]:
                self._state.claimed.discard(nested.recipient)
            del self._pending[mark:]
            self._state.claimed.discard(recipient)
            raise

        self._pending.append(record)
        return record

    def _transfer(self, to: str, amount: int) -> None:
        try:
            ok = self._config.token.transfer(self._address, to, amount)
        except DistributionError:
            raise
        except Exception as e:
            logger.warning("Transfer of %d to %s raised: %s", amount, to, e)
            raise TransferFailed(f"Transfer of {amount} to {to} failed: {e}") from e
        if not ok:
            logger.warning("Transfer of %d to %s rejected by token ledger", amount, to)
            raise TransferFailed(f"Token ledger rejected transfer of {amount} to {to}")

    def _publish(self, records: List[ClaimRecord]) -> None:
        """Log every committed record, then notify observers.

        All records reach the log before any observer runs. Observers are
        notifications only: the claim has already committed, so an observer
        error is logged and the remaining observers still run.
        """
        for record in records:
            self._log.record_claim(record)
            logger.info(
                "Claimed %s by %s at height %d: recipient %d, caller %d",
                record.recipient, record.submitter, record.block_height,
                record.recipient_amount, record.caller_amount,
            )
        for record in records:
            for observer in self._observers:
                try:
                    observer(record)
                except Exception:
                    logger.exception("Claim observer failed for %s", record.recipient)
