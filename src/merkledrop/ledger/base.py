"""Token ledger contract the distribution depends on.

The distribution never mints or burns. It only reads its own custody
balance and moves tokens out of custody.
"""

from __future__ import annotations

from typing import ContextManager, Protocol, runtime_checkable


@runtime_checkable
class TokenLedger(Protocol):
    """A fungible-token ledger.

    transfer() returns False (or raises) when the ledger rejects the
    transfer. Transfers made inside a transaction() block must be undone
    if the block raises.
    """

    def balance_of(self, holder: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> bool: ...

    def transaction(self) -> ContextManager[None]: ...
