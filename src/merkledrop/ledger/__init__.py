"""Token ledgers the distribution can draw from."""

from merkledrop.ledger.base import TokenLedger
from merkledrop.ledger.memory import InMemoryTokenLedger

__all__ = ["InMemoryTokenLedger", "TokenLedger"]
