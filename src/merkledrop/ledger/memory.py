"""In-memory fixed-supply token.

The whole supply is minted once, to a single holder, at construction.
Used in tests and for dry runs of a distribution before it goes on chain.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from merkledrop.crypto.hashing import normalize_address

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, int], None]


class InMemoryTokenLedger:
    """Balances held in a dict, with transactional rollback.

    Usage:
        token = InMemoryTokenLedger(holder=deployer, total_supply=1000)
        token.transfer(deployer, distributor_address, 1000)
        with token.transaction():
            token.transfer(distributor_address, alice, 100)

    Hooks for exercising failure paths:
        reject_transfers_to: transfers to these addresses return False.
        on_transfer: called as (sender, to, amount) after each balance move,
            before transfer() returns.
    """

    def __init__(self, holder: str, total_supply: int) -> None:
        if total_supply < 0:
            raise ValueError(f"Supply must be non-negative, got {total_supply}")
        self._balances: Dict[str, int] = {}
        self.total_supply = total_supply
        if total_supply:
            self._balances[normalize_address(holder)] = total_supply
        self.reject_transfers_to: set[str] = set()
        self.on_transfer: Optional[TransferHook] = None

    def balance_of(self, holder: str) -> int:
        return self._balances.get(normalize_address(holder), 0)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        sender = normalize_address(sender)
        to = normalize_address(to)
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative, got {amount}")
        if to in {normalize_address(a) for a in self.reject_transfers_to}:
            logger.warning("Transfer to %s rejected by ledger", to)
            return False
        if self._balances.get(sender, 0) < amount:
            logger.warning(
                "Transfer of %d from %s exceeds balance %d",
                amount, sender, self._balances.get(sender, 0),
            )
            return False

        self._balances[sender] -= amount
        self._balances[to] = self._balances.get(to, 0) + amount

        if self.on_transfer is not None:
            self.on_transfer(sender, to, amount)
        return True

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Restore every balance if the block raises."""
        snapshot = dict(self._balances)
        try:
            yield
        except BaseException:
            self._balances = snapshot
            raise
