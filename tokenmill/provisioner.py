"""
Idempotent creation of auxiliary accounts.

Each ``ensure_*`` call reads the account first and only submits a creation
transaction when it is absent. A creation rejected because the account was
created concurrently is re-read and treated as success.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import create_idempotent_associated_token_account, get_associated_token_address

from tokenmill import instructions as ix
from tokenmill.errors import AccountNotFound, OnChainRejection, ValidationError
from tokenmill.executor import is_already_exists_error, submit_and_confirm
from tokenmill.ledger import LedgerClient, PreparedTransaction
from tokenmill.pda import (
    QUOTE_TOKEN_MINT,
    derive_market_staking_pda,
    derive_quote_token_badge_pda,
    derive_stake_position_pda,
    is_supported_token_program,
)
from tokenmill.signing import SigningContext

logger = logging.getLogger(__name__)


class AccountProvisioner:
    """Check-then-create for staking, stake positions, ATAs and badges."""

    def __init__(self, ledger: LedgerClient, signing: SigningContext):
        self.ledger = ledger
        self.signing = signing

    async def exists(self, address: Pubkey) -> bool:
        return await self.ledger.get_account_info(address) is not None

    async def token_program_of(self, mint: Pubkey) -> Pubkey:
        """Token program owning ``mint`` (legacy SPL or Token-2022)."""
        info = await self.ledger.get_account_info(mint)
        if info is None:
            raise AccountNotFound("mint", str(mint))
        if not is_supported_token_program(info.owner):
            raise ValidationError("mint is not owned by a token program", {"mint": str(mint), "owner": str(info.owner)})
        return info.owner

    async def ensure(
        self,
        kind: str,
        address: Pubkey,
        build: Callable[[], PreparedTransaction],
    ) -> Optional[str]:
        """
        Create ``address`` via ``build()`` unless it already exists.

        Returns:
            Signature of the creation transaction, or None when nothing was sent.
        """
        if await self.exists(address):
            logger.debug(f"{kind} {address} already exists")
            return None

        tx = build()
        logger.info(f"Creating {kind} {address}")
        try:
            return await submit_and_confirm(self.ledger, tx)
        except OnChainRejection as exc:
            if is_already_exists_error(exc.err) and await self.exists(address):
                logger.info(f"{kind} {address} was created concurrently")
                return None
            raise

    async def ensure_staking_activated(self, market: Pubkey) -> Optional[str]:
        staking = derive_market_staking_pda(market, self.signing.program_id)
        wallet = self.signing.wallet

        def build() -> PreparedTransaction:
            instruction = ix.create_staking(
                self.signing.program_id,
                market=market,
                staking=staking,
                payer=wallet.pubkey(),
            )
            return PreparedTransaction("create_staking", [instruction], [wallet])

        return await self.ensure("staking", staking, build)

    async def ensure_stake_position_created(self, market: Pubkey, user: Optional[Pubkey] = None) -> Optional[str]:
        wallet = self.signing.wallet
        owner = user or wallet.pubkey()
        if owner != wallet.pubkey():
            raise ValidationError(
                "stake positions can only be created for the signing wallet",
                {"user": str(owner)},
            )
        position = derive_stake_position_pda(market, owner, self.signing.program_id)

        def build() -> PreparedTransaction:
            instruction = ix.create_stake_position(
                self.signing.program_id,
                market=market,
                stake_position=position,
                user=owner,
            )
            return PreparedTransaction("create_stake_position", [instruction], [wallet])

        return await self.ensure("stake position", position, build)

    async def ensure_associated_token_account(
        self,
        mint: Pubkey,
        owner: Pubkey,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> Pubkey:
        """Ensure the ATA of (owner, mint) exists; returns its address."""
        if not is_supported_token_program(token_program):
            raise ValidationError("unsupported token program", {"token_program": str(token_program)})
        ata = get_associated_token_address(owner, mint, token_program)
        wallet = self.signing.wallet

        def build() -> PreparedTransaction:
            instruction = create_idempotent_associated_token_account(
                wallet.pubkey(), owner, mint, token_program_id=token_program
            )
            return PreparedTransaction("create_associated_token_account", [instruction], [wallet])

        await self.ensure("associated token account", ata, build)
        return ata

    async def ensure_quote_token_badge(self, quote_mint: Pubkey = QUOTE_TOKEN_MINT) -> tuple:
        """Returns (badge address, signature or None)."""
        config = self.signing.config
        badge = derive_quote_token_badge_pda(config, quote_mint, self.signing.program_id)
        wallet = self.signing.wallet

        def build() -> PreparedTransaction:
            instruction = ix.create_quote_asset_badge(
                self.signing.program_id,
                config=config,
                quote_token_badge=badge,
                token_mint=quote_mint,
                authority=wallet.pubkey(),
            )
            return PreparedTransaction("create_quote_asset_badge", [instruction], [wallet])

        signature = await self.ensure("quote token badge", badge, build)
        return badge, signature
