"""Distribution settings — JSON parameters plus chain credentials from the environment.

The parameters file holds everything committed at deployment:

    {
        "token_address": "0x...",
        "merkle_root": "0x...",
        "total_recipients": 10,
        "incentive_window_start": 100,
        "incentive_window_end": 200,
        "distributor_address": "0x..."
    }

Chain credentials never live in that file. RPC_URL and PRIVATE_KEY are
read from the environment, with a .env file loaded first if present.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from merkledrop.crypto.hashing import normalize_address, parse_digest
from merkledrop.ledger.base import TokenLedger
from merkledrop.models.distribution import DistributionConfig

REQUIRED_FIELDS = (
    "token_address",
    "merkle_root",
    "total_recipients",
    "incentive_window_start",
    "incentive_window_end",
)


@dataclass(frozen=True)
class DistributionSettings:
    """Deployment parameters for one distribution."""
    token_address: str
    merkle_root: bytes
    total_recipients: int
    incentive_window_start: int
    incentive_window_end: int
    distributor_address: Optional[str] = None
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DistributionSettings:
        missing = [k for k in REQUIRED_FIELDS if k not in data]
        if missing:
            raise ValueError(f"Missing distribution settings: {', '.join(missing)}")
        distributor = data.get("distributor_address")
        return DistributionSettings(
            token_address=normalize_address(data["token_address"]),
            merkle_root=parse_digest(data["merkle_root"]),
            total_recipients=int(data["total_recipients"]),
            incentive_window_start=int(data["incentive_window_start"]),
            incentive_window_end=int(data["incentive_window_end"]),
            distributor_address=normalize_address(distributor) if distributor else None,
        )

    @classmethod
    def from_file(
        cls,
        path: Path,
        env_file: Optional[Path] = None,
    ) -> DistributionSettings:
        """Load parameters from JSON and credentials from the environment.

        Values already set in the process environment take precedence over
        the .env file.
        """
        data = json.loads(path.read_text(encoding="utf-8"))
        settings = cls.from_dict(data)

        load_dotenv(env_file if env_file is not None else path.parent / ".env")
        return DistributionSettings(
            token_address=settings.token_address,
            merkle_root=settings.merkle_root,
            total_recipients=settings.total_recipients,
            incentive_window_start=settings.incentive_window_start,
            incentive_window_end=settings.incentive_window_end,
            distributor_address=settings.distributor_address,
            rpc_url=os.getenv("RPC_URL"),
            private_key=os.getenv("PRIVATE_KEY"),
        )

    def to_config(self, token: TokenLedger) -> DistributionConfig:
        return DistributionConfig(
            token=token,
            merkle_root=self.merkle_root,
            total_recipients=self.total_recipients,
            incentive_window_start=self.incentive_window_start,
            incentive_window_end=self.incentive_window_end,
        )

    def web3_ledger(self) -> TokenLedger:
        """Build the ERC-20 ledger for these settings.

        Requires RPC_URL and PRIVATE_KEY in the environment.
        """
        if not self.rpc_url or not self.private_key:
            raise ValueError("RPC_URL and PRIVATE_KEY must be set to reach the chain")
        from merkledrop.ledger.web3_token import Web3TokenLedger

        return Web3TokenLedger(self.rpc_url, self.token_address, self.private_key)
