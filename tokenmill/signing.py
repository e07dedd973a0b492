"""
Signing identities threaded through every operation.

The wallet pays fees and owns user-side accounts; the swap authority is the
delegated key that signs permissioned swaps while a market is LOCKED.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from tokenmill.pda import derive_config_pda

logger = logging.getLogger(__name__)


def load_keypair(secret: Union[str, bytes, list]) -> Keypair:
    """
    Load a keypair from a JSON byte array, a base58 string, or a file path
    holding either.
    """
    if isinstance(secret, (bytes, bytearray)):
        return Keypair.from_bytes(bytes(secret))
    if isinstance(secret, list):
        return Keypair.from_bytes(bytes(secret))

    value = secret.strip()
    if not value:
        raise ValueError("empty secret key")

    path = Path(value)
    if not value.startswith("[") and len(value) < 256 and path.suffix == ".json" and path.exists():
        value = path.read_text().strip()

    if value.startswith("["):
        return Keypair.from_bytes(bytes(json.loads(value)))
    return Keypair.from_bytes(base58.b58decode(value))


@dataclass(frozen=True)
class SigningContext:
    """Keys and program addresses one orchestrator instance works with."""

    wallet: Keypair
    swap_authority: Keypair
    program_id: Pubkey
    config_address: Optional[Pubkey] = None

    @property
    def config(self) -> Pubkey:
        return self.config_address or derive_config_pda(self.program_id)

    @property
    def wallet_pubkey(self) -> Pubkey:
        return self.wallet.pubkey()

    @property
    def swap_authority_pubkey(self) -> Pubkey:
        return self.swap_authority.pubkey()

    def describe(self) -> dict:
        """Public keys only; safe to log."""
        return {
            "wallet": str(self.wallet_pubkey),
            "swap_authority": str(self.swap_authority_pubkey),
            "program_id": str(self.program_id),
            "config": str(self.config),
        }
