"""Tests for the ERC-20 ledger — broadcast ordering and partial-send handling.

The chain is replaced by in-memory stubs: eth_call simulation reads a
balance table, and each broadcast is mined (or fails) according to the
outcome configured for its position.
"""

from types import SimpleNamespace
from typing import Optional

import pytest

from merkledrop.crypto.hashing import normalize_address
from merkledrop.crypto.merkle import GenesisTree
from merkledrop.distribution.distributor import MerkleDistributor
from merkledrop.errors import AlreadyClaimed, PartialTransfer, TransferFailed
from merkledrop.ledger.base import TokenLedger
from merkledrop.ledger.web3_token import Web3TokenLedger
from merkledrop.models.distribution import DistributionConfig


CUSTODY = normalize_address("0x" + "d" * 40)
CALLER = normalize_address("0x" + "c" * 40)
ALICE = normalize_address("0x" + "a" * 40)
BOB = normalize_address("0x" + "b" * 40)
OTHER = normalize_address("0x" + "e" * 40)


class _Call:
    def __init__(self, fn) -> None:
        self._fn = fn

    def call(self, tx: Optional[dict] = None):
        return self._fn(tx or {})


class _Functions:
    def __init__(self, chain: "FakeChainLedger") -> None:
        self._chain = chain

    def balanceOf(self, holder: str) -> _Call:
        return _Call(lambda tx: self._chain.balances.get(holder, 0))

    def transfer(self, to: str, amount: int) -> _Call:
        return _Call(lambda tx: self._chain.simulate(tx["from"], to, amount))


class FakeChainLedger(Web3TokenLedger):
    """Web3TokenLedger whose RPC calls hit an in-memory chain."""

    def __init__(self, custody: str, funded: int = 0) -> None:
        self._account = SimpleNamespace(address=custody)
        self._contract = SimpleNamespace(functions=_Functions(self))
        self._pending = None
        self.balances = {custody: funded}
        self.broadcasts: list[tuple[str, int]] = []
        self.simulation_error: Optional[Exception] = None
        # Keyed by broadcast position.
        self.broadcast_errors: dict[int, Exception] = {}
        self.receipts: dict[int, object] = {}

    def simulate(self, sender: str, to: str, amount: int) -> bool:
        if self.simulation_error is not None:
            raise self.simulation_error
        return self.balances.get(sender, 0) >= amount

    def _broadcast(self, to: str, amount: int) -> bytes:
        index = len(self.broadcasts)
        if index in self.broadcast_errors:
            raise self.broadcast_errors[index]
        self.broadcasts.append((to, amount))
        return bytes([index]) * 32

    def _confirm(self, tx_hash: bytes) -> bool:
        index = tx_hash[0]
        outcome = self.receipts.get(index, True)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            to, amount = self.broadcasts[index]
            self.balances[self.address] -= amount
            self.balances[to] = self.balances.get(to, 0) + amount
        return bool(outcome)


@pytest.fixture
def chain() -> FakeChainLedger:
    return FakeChainLedger(CUSTODY, funded=1000)


class TestDirectTransfer:
    def test_satisfies_ledger_protocol(self, chain: FakeChainLedger) -> None:
        assert isinstance(chain, TokenLedger)
        assert chain.balance_of(CUSTODY) == 1000

    def test_foreign_sender_rejected(self, chain: FakeChainLedger) -> None:
        assert chain.transfer(OTHER, ALICE, 10) is False
        assert chain.broadcasts == []

    def test_failed_simulation_rejected(self, chain: FakeChainLedger) -> None:
        chain.simulation_error = RuntimeError("execution reverted")
        assert chain.transfer(CUSTODY, ALICE, 10) is False
        assert chain.broadcasts == []

    def test_insufficient_balance_rejected(self, chain: FakeChainLedger) -> None:
        assert chain.transfer(CUSTODY, ALICE, 1001) is False
        assert chain.broadcasts == []

    def test_transfer_sent_and_mined(self, chain: FakeChainLedger) -> None:
        assert chain.transfer(CUSTODY, ALICE, 10) is True
        assert chain.broadcasts == [(ALICE, 10)]
        assert chain.balance_of(ALICE) == 10
        assert chain.balance_of(CUSTODY) == 990

    def test_broadcast_error_returns_false(self, chain: FakeChainLedger) -> None:
        chain.broadcast_errors[0] = ConnectionError("rpc down")
        assert chain.transfer(CUSTODY, ALICE, 10) is False

    def test_reverted_receipt_returns_false(self, chain: FakeChainLedger) -> None:
        chain.receipts[0] = False
        assert chain.transfer(CUSTODY, ALICE, 10) is False
        assert chain.balance_of(ALICE) == 0

    def test_missing_receipt_is_partial(self, chain: FakeChainLedger) -> None:
        chain.receipts[0] = TimeoutError("no receipt")
        with pytest.raises(PartialTransfer) as exc:
            chain.transfer(CUSTODY, ALICE, 10)
        assert exc.value.sent == [(ALICE, 10)]


class TestTransaction:
    def test_transfers_queued_until_block_exits(self, chain: FakeChainLedger) -> None:
        with chain.transaction():
            assert chain.transfer(CUSTODY, CALLER, 30) is True
            assert chain.transfer(CUSTODY, ALICE, 70) is True
            assert chain.broadcasts == []
        assert chain.broadcasts == [(CALLER, 30), (ALICE, 70)]
        assert chain.balance_of(CUSTODY) == 900

    def test_nothing_sent_when_block_raises(self, chain: FakeChainLedger) -> None:
        with pytest.raises(RuntimeError):
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                raise RuntimeError("claim aborted")
        assert chain.broadcasts == []
        assert chain.balance_of(CUSTODY) == 1000

    def test_nested_block_sends_at_outer_exit(self, chain: FakeChainLedger) -> None:
        with chain.transaction():
            chain.transfer(CUSTODY, CALLER, 30)
            with chain.transaction():
                chain.transfer(CUSTODY, ALICE, 70)
            assert chain.broadcasts == []
        assert chain.broadcasts == [(CALLER, 30), (ALICE, 70)]

    def test_first_broadcast_failure_is_clean(self, chain: FakeChainLedger) -> None:
        chain.broadcast_errors[0] = ConnectionError("rpc down")
        with pytest.raises(TransferFailed, match="rpc down") as exc:
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                chain.transfer(CUSTODY, ALICE, 70)
        assert not isinstance(exc.value, PartialTransfer)
        assert chain.balance_of(CUSTODY) == 1000

    def test_first_transfer_reverted_is_clean(self, chain: FakeChainLedger) -> None:
        chain.receipts[0] = False
        with pytest.raises(TransferFailed) as exc:
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                chain.transfer(CUSTODY, ALICE, 70)
        assert not isinstance(exc.value, PartialTransfer)
        assert chain.broadcasts == [(CALLER, 30)]

    def test_second_broadcast_failure_is_partial(self, chain: FakeChainLedger) -> None:
        chain.broadcast_errors[1] = ConnectionError("rpc dropped")
        with pytest.raises(PartialTransfer) as exc:
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                chain.transfer(CUSTODY, ALICE, 70)
        assert exc.value.sent == [(CALLER, 30)]
        assert chain.balance_of(CALLER) == 30

    def test_second_transfer_reverted_is_partial(self, chain: FakeChainLedger) -> None:
        chain.receipts[1] = False
        with pytest.raises(PartialTransfer) as exc:
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                chain.transfer(CUSTODY, ALICE, 70)
        assert exc.value.sent == [(CALLER, 30)]

    def test_missing_receipt_counts_as_sent(self, chain: FakeChainLedger) -> None:
        chain.receipts[0] = TimeoutError("receipt wait timed out")
        with pytest.raises(PartialTransfer) as exc:
            with chain.transaction():
                chain.transfer(CUSTODY, CALLER, 30)
                chain.transfer(CUSTODY, ALICE, 70)
        assert exc.value.sent == [(CALLER, 30)]
        assert chain.broadcasts == [(CALLER, 30)]


class TestDistributorOnChain:
    @pytest.fixture
    def tree(self) -> GenesisTree:
        return GenesisTree([ALICE, BOB])

    @pytest.fixture
    def started(self, chain: FakeChainLedger, tree: GenesisTree) -> MerkleDistributor:
        config = DistributionConfig(
            token=chain,
            merkle_root=tree.root,
            total_recipients=2,
            incentive_window_start=100,
            incentive_window_end=200,
        )
        distributor = MerkleDistributor(config, CUSTODY, current_height=50)
        distributor.activate()
        return distributor

    def test_third_party_claim_sends_both_shares(
        self, started: MerkleDistributor, chain: FakeChainLedger, tree: GenesisTree,
    ) -> None:
        record = started.claim(ALICE, tree.proof(ALICE), caller=CALLER, height=150)
        assert record.caller_amount == 250
        assert chain.broadcasts == [(CALLER, 250), (ALICE, 250)]
        assert chain.balance_of(CUSTODY) == 500

    def test_first_send_failure_reopens_claim(
        self, started: MerkleDistributor, chain: FakeChainLedger, tree: GenesisTree,
    ) -> None:
        chain.broadcast_errors[0] = ConnectionError("rpc down")
        with pytest.raises(TransferFailed) as exc:
            started.claim(ALICE, tree.proof(ALICE), caller=CALLER, height=150)
        assert not isinstance(exc.value, PartialTransfer)
        assert not started.is_claimed(ALICE)
        assert started.claim_log.claims() == []

        chain.broadcast_errors.clear()
        started.claim(ALICE, tree.proof(ALICE), caller=CALLER, height=151)
        assert chain.balance_of(ALICE) > 0

    def test_second_send_failure_keeps_claim_consumed(
        self, started: MerkleDistributor, chain: FakeChainLedger, tree: GenesisTree,
    ) -> None:
        seen = []
        started.add_observer(seen.append)
        chain.broadcast_errors[1] = ConnectionError("rpc dropped")

        with pytest.raises(PartialTransfer) as exc:
            started.claim(ALICE, tree.proof(ALICE), caller=CALLER, height=150)

        assert exc.value.sent == [(CALLER, 250)]
        assert started.is_claimed(ALICE)
        [record] = started.claim_log.claims()
        assert record.recipient == ALICE
        assert seen == [record]

        chain.broadcast_errors.clear()
        with pytest.raises(AlreadyClaimed):
            started.claim(ALICE, tree.proof(ALICE), caller=OTHER, height=160)
        assert chain.balance_of(CALLER) == 250
        assert chain.broadcasts == [(CALLER, 250)]

    def test_missing_receipt_keeps_claim_consumed(
        self, started: MerkleDistributor, chain: FakeChainLedger, tree: GenesisTree,
    ) -> None:
        chain.receipts[0] = TimeoutError("receipt wait timed out")
        with pytest.raises(PartialTransfer):
            started.claim(ALICE, tree.proof(ALICE), caller=ALICE, height=60)
        assert started.is_claimed(ALICE)
        with pytest.raises(AlreadyClaimed):
            started.claim(ALICE, tree.proof(ALICE), caller=ALICE, height=61)
