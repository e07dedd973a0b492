"""
Market lifecycle: LOCKED until the market holds enough quote asset, then FREE.

State is never cached. Every call reads the market's quote-asset token
account and compares its UI balance against FREE_MARKET_QUOTE_THRESHOLD.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from tokenmill import instructions as ix
from tokenmill.errors import PreconditionUnmet
from tokenmill.executor import submit_and_confirm
from tokenmill.ledger import LedgerClient, PreparedTransaction
from tokenmill.pda import QUOTE_TOKEN_MINT, derive_swap_authority_badge_pda
from tokenmill.signing import SigningContext

logger = logging.getLogger(__name__)

# Quote asset (wSOL) the market must hold before it can be freed, in UI units
FREE_MARKET_QUOTE_THRESHOLD = Decimal(69)


class LifecycleState(str, Enum):
    LOCKED = "LOCKED"
    FREE = "FREE"


@dataclass(frozen=True)
class LifecycleObservation:
    market: Pubkey
    state: LifecycleState
    quote_balance: Decimal
    threshold: Decimal = FREE_MARKET_QUOTE_THRESHOLD

    @property
    def is_free(self) -> bool:
        return self.state is LifecycleState.FREE


def classify(quote_balance: Decimal, threshold: Decimal = FREE_MARKET_QUOTE_THRESHOLD) -> LifecycleState:
    return LifecycleState.FREE if quote_balance >= threshold else LifecycleState.LOCKED


class MarketLifecycleController:
    def __init__(self, ledger: LedgerClient, signing: SigningContext):
        self.ledger = ledger
        self.signing = signing

    def market_quote_token_account(self, market: Pubkey) -> Pubkey:
        return get_associated_token_address(market, QUOTE_TOKEN_MINT, TOKEN_PROGRAM_ID)

    def swap_authority_badge(self, market: Pubkey, authority: Optional[Pubkey] = None) -> Pubkey:
        return derive_swap_authority_badge_pda(
            market,
            authority or self.signing.swap_authority_pubkey,
            self.signing.program_id,
        )

    async def observe(self, market: Pubkey) -> LifecycleObservation:
        """Read the market's quote balance and classify it. Missing account reads as 0."""
        balance = await self.ledger.get_token_account_balance(self.market_quote_token_account(market))
        ui_amount = balance.ui_amount if balance is not None else Decimal(0)
        state = classify(ui_amount)
        logger.info(f"Market {market} quote balance {ui_amount} -> {state.value}")
        return LifecycleObservation(market=market, state=state, quote_balance=ui_amount)

    def build_free_market(self, market: Pubkey) -> PreparedTransaction:
        authority = self.signing.swap_authority
        instruction = ix.free_market(
            self.signing.program_id,
            market=market,
            swap_authority=authority.pubkey(),
            swap_authority_badge=self.swap_authority_badge(market),
        )
        return PreparedTransaction("free_market", [instruction], [self.signing.wallet, authority])

    def build_lock_market(self, market: Pubkey, authority: Optional[Pubkey] = None) -> PreparedTransaction:
        swap_authority = authority or self.signing.swap_authority_pubkey
        instruction = ix.lock_market(
            self.signing.program_id,
            market=market,
            swap_authority_badge=self.swap_authority_badge(market, swap_authority),
            creator=self.signing.wallet_pubkey,
            swap_authority=swap_authority,
        )
        return PreparedTransaction("lock_market", [instruction], [self.signing.wallet])

    async def free_market(self, market: Pubkey) -> str:
        """
        Move a market from LOCKED to FREE.

        Raises:
            PreconditionUnmet: balance below threshold; nothing is built or sent
            OnChainRejection: the program rejected the transition
        """
        observation = await self.observe(market)
        if not observation.is_free:
            raise PreconditionUnmet(
                f"Market quote balance {observation.quote_balance} is below {observation.threshold}",
                observed=observation.quote_balance,
                required=observation.threshold,
            )
        return await submit_and_confirm(self.ledger, self.build_free_market(market))

    async def has_delegated_lock(self, market: Pubkey) -> bool:
        """True while the swap authority badge account exists on-chain."""
        return await self.ledger.get_account_info(self.swap_authority_badge(market)) is not None

    async def ensure_free(self, market: Pubkey) -> Optional[str]:
        """Submit free_market only while the delegated lock is still recorded."""
        if not await self.has_delegated_lock(market):
            logger.debug(f"Market {market} already free")
            return None
        return await submit_and_confirm(self.ledger, self.build_free_market(market))

    async def lock_market(self, market: Pubkey, authority: Optional[Pubkey] = None) -> str:
        return await submit_and_confirm(self.ledger, self.build_lock_market(market, authority))
