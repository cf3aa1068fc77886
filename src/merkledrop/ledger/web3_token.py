"""ERC-20 token ledger over an Ethereum JSON-RPC endpoint.

Balances are read with ``balanceOf``. Transfers are signed locally with
the custody key and sent as ``transfer(to, amount)`` calls.

Transfers inside a transaction() block are dry-run with eth_call when
requested and only broadcast when the block exits cleanly, so a claim
rejected mid-way sends nothing. Once broadcasting starts, a later failure
cannot undo transfers that were already mined, so it surfaces as
PartialTransfer and the claim stays consumed.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, NoReturn, Optional, Tuple

from merkledrop.crypto.hashing import normalize_address
from merkledrop.errors import PartialTransfer, TransferFailed

logger = logging.getLogger(__name__)

ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class Web3TokenLedger:
    """ERC-20 ledger bound to one custody key.

    Args:
        rpc_url: Ethereum RPC endpoint URL.
        token_address: ERC-20 contract address.
        private_key: Hex-encoded custody key. Only this account can send.
        gas: Gas limit per transfer.
        receipt_timeout: Seconds to wait for each receipt.
    """

    def __init__(
        self,
        rpc_url: str,
        token_address: str,
        private_key: str,
        gas: int = 100_000,
        receipt_timeout: int = 300,
    ) -> None:
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        self._w3 = Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._contract = self._w3.eth.contract(
            address=normalize_address(token_address), abi=ERC20_ABI
        )
        self._gas = gas
        self._receipt_timeout = receipt_timeout
        self._pending: Optional[List[Tuple[str, int]]] = None

    @property
    def address(self) -> str:
        """The custody account this ledger signs for."""
        return self._account.address

    def balance_of(self, holder: str) -> int:
        return int(self._contract.functions.balanceOf(normalize_address(holder)).call())

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        sender = normalize_address(sender)
        to = normalize_address(to)
        if sender != self._account.address:
            logger.warning("Cannot sign for %s, custody key is %s", sender, self._account.address)
            return False

        # Dry-run against current chain state before committing to anything.
        try:
            ok = self._contract.functions.transfer(to, amount).call({"from": sender})
        except Exception as e:
            logger.warning("Simulated transfer to %s failed: %s", to, e)
            return False
        if not ok:
            return False

        if self._pending is not None:
            self._pending.append((to, amount))
            return True
        try:
            tx_hash = self._broadcast(to, amount)
        except Exception as e:
            logger.warning("Broadcast of %d to %s failed: %s", amount, to, e)
            return False
        return self._settle(to, amount, tx_hash, [])

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Queue transfers and broadcast them only if the block succeeds.

        Raises TransferFailed if the first broadcast fails, and
        PartialTransfer if a later one fails after earlier transfers may
        already be mined.
        """
        if self._pending is not None:
            yield
            return
        self._pending = []
        try:
            yield
            queued = self._pending
        finally:
            self._pending = None

        sent: List[Tuple[str, int]] = []
        for to, amount in queued:
            try:
                tx_hash = self._broadcast(to, amount)
            except Exception as e:
                self._fail(f"Broadcast of {amount} to {to} failed: {e}", sent, e)
            if not self._settle(to, amount, tx_hash, sent):
                self._fail(f"Transfer of {amount} to {to} reverted", sent)

    def _settle(
        self, to: str, amount: int, tx_hash: bytes, sent: List[Tuple[str, int]]
    ) -> bool:
        """Wait for a broadcast transfer. True and recorded in sent if mined."""
        try:
            ok = self._confirm(tx_hash)
        except Exception as e:
            # No receipt does not mean not mined; count it as sent.
            sent.append((to, amount))
            self._fail(f"No receipt for transfer of {amount} to {to}: {e}", sent, e)
        if ok:
            sent.append((to, amount))
        return ok

    @staticmethod
    def _fail(
        message: str,
        sent: List[Tuple[str, int]],
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        logger.warning("%s (already sent: %s)", message, sent)
        if sent:
            raise PartialTransfer(message, list(sent)) from cause
        raise TransferFailed(message) from cause

    def _broadcast(self, to: str, amount: int) -> bytes:
        nonce = self._w3.eth.get_transaction_count(self._account.address)
        tx = self._contract.functions.transfer(to, amount).build_transaction({
            "from": self._account.address,
            "nonce": nonce,
            "gas": self._gas,
            "chainId": self._w3.eth.chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent transfer of %d to %s: %s", amount, to, tx_hash.hex())
        return tx_hash

    def _confirm(self, tx_hash: bytes) -> bool:
        receipt = self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._receipt_timeout
        )
        if receipt.status != 1:
            logger.warning("Transfer tx %s reverted in block %s", tx_hash.hex(), receipt.blockNumber)
            return False
        return True
