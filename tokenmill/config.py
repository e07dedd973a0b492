"""
Environment configuration for the Token Mill orchestrator.

Values come from the process environment, optionally seeded from a ``.env``
file (existing variables are never overridden).

Usage:
    from tokenmill.config import Settings

    settings = Settings.from_env()
    context = settings.signing_context()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from tokenmill.errors import ValidationError
from tokenmill.pda import parse_address
from tokenmill.signing import SigningContext, load_keypair

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_PROGRAM_ID = "JoeaRXgtME3jAoz5WuFXGEndfv4NPH9nBxsLq44hk9J"

REQUIRED_VARS = ["WALLET_PRIVATE_KEY", "SWAP_AUTHORITY_KEY"]


@dataclass
class Settings:
    rpc_url: str
    program_id: Pubkey
    wallet: Keypair
    swap_authority: Keypair
    config_address: Optional[Pubkey] = None
    commitment: str = "confirmed"
    confirm_timeout_seconds: float = 30.0
    vesting_ready_timeout_seconds: float = 90.0
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "Settings":
        """
        Build settings from ``env`` (defaults to ``os.environ``).

        Raises:
            ValueError: required variables missing or unparseable
        """
        if env is None:
            path = env_file or Path.cwd() / ".env"
            if path.exists():
                load_dotenv(path, override=False)
                logger.debug(f"Loaded environment from {path}")
            env = os.environ

        missing: List[str] = [name for name in REQUIRED_VARS if not env.get(name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        try:
            wallet = load_keypair(env["WALLET_PRIVATE_KEY"])
            swap_authority = load_keypair(env["SWAP_AUTHORITY_KEY"])
        except Exception as exc:
            # Never echo the secret itself
            raise ValueError(f"Invalid key material: {type(exc).__name__}") from None

        try:
            program_id = parse_address(env.get("TOKEN_MILL_PROGRAM_ID") or DEFAULT_PROGRAM_ID, "TOKEN_MILL_PROGRAM_ID")
            config_raw = env.get("TOKEN_MILL_CONFIG_PDA")
            config_address = parse_address(config_raw, "TOKEN_MILL_CONFIG_PDA") if config_raw else None
        except ValidationError as exc:
            raise ValueError(exc.message) from exc

        return cls(
            rpc_url=env.get("SOLANA_RPC_URL") or env.get("RPC_URL") or DEFAULT_RPC_URL,
            program_id=program_id,
            wallet=wallet,
            swap_authority=swap_authority,
            config_address=config_address,
            commitment=env.get("RPC_COMMITMENT", "confirmed"),
            confirm_timeout_seconds=float(env.get("CONFIRM_TIMEOUT_SECONDS", "30")),
            vesting_ready_timeout_seconds=float(env.get("VESTING_READY_TIMEOUT_SECONDS", "90")),
            api_host=env.get("API_HOST", "0.0.0.0"),
            api_port=int(env.get("API_PORT", "3000")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def signing_context(self) -> SigningContext:
        return SigningContext(
            wallet=self.wallet,
            swap_authority=self.swap_authority,
            program_id=self.program_id,
            config_address=self.config_address,
        )

    def summary(self) -> Dict[str, str]:
        """Loggable view; secret keys are reduced to their public keys."""
        return {
            "rpc_url": self.rpc_url,
            "commitment": self.commitment,
            **self.signing_context().describe(),
        }
