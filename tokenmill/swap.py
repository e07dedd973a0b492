"""
Permissioned swaps against a Token Mill market.

``prepare`` builds the unsent swap once; ``swap`` submits it and ``quote``
simulates it. The lifecycle state observed while preparing decides the
signer set:

    LOCKED  wallet + delegated swap authority, swap authority badge included
    FREE    wallet alone, acting as its own swap authority

Amount semantics per (action, trade_type):

    buy  / exactInput   amount = quote spent     threshold = min base received
    buy  / exactOutput  amount = base received   threshold = max quote spent
    sell / exactInput   amount = base spent      threshold = min quote received
    sell / exactOutput  amount = quote received  threshold = max base spent
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from tokenmill import instructions as ix
from tokenmill.errors import OnChainRejection, ValidationError
from tokenmill.executor import simulate, submit_and_confirm
from tokenmill.instructions import U64_MAX, SwapAccounts, SwapAction, TradeType
from tokenmill.ledger import LedgerClient, PreparedTransaction
from tokenmill.lifecycle import LifecycleObservation, LifecycleState, MarketLifecycleController
from tokenmill.pda import QUOTE_TOKEN_MINT
from tokenmill.provisioner import AccountProvisioner
from tokenmill.quote import QuoteDecoder, SwapQuote
from tokenmill.signing import SigningContext

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
DEFAULT_SLIPPAGE_BPS = 100  # 1%


# =============================================================================
# Amount semantics
# =============================================================================


@dataclass(frozen=True)
class SwapTerms:
    """What ``amount`` and ``other_amount_threshold`` mean for one combination."""

    amount_asset: str
    amount_direction: str
    threshold_bound: str
    threshold_asset: str
    threshold_direction: str

    def describe(self) -> str:
        return (
            f"amount = {self.amount_asset} {self.amount_direction}; "
            f"otherAmountThreshold = {self.threshold_bound} "
            f"{self.threshold_asset} {self.threshold_direction}"
        )


_TERMS: Dict[Tuple[SwapAction, TradeType], SwapTerms] = {
    (SwapAction.BUY, TradeType.EXACT_INPUT): SwapTerms("quote", "spent", "min", "base", "received"),
    (SwapAction.BUY, TradeType.EXACT_OUTPUT): SwapTerms("base", "received", "max", "quote", "spent"),
    (SwapAction.SELL, TradeType.EXACT_INPUT): SwapTerms("base", "spent", "min", "quote", "received"),
    (SwapAction.SELL, TradeType.EXACT_OUTPUT): SwapTerms("quote", "received", "max", "base", "spent"),
}


def describe_amounts(action: SwapAction, trade_type: TradeType) -> SwapTerms:
    return _TERMS[(SwapAction(action), TradeType(trade_type))]


def default_other_amount_threshold(action: SwapAction, amount: int) -> int:
    """
    1% slippage band around ``amount``: floor(amount * 0.99) for buys,
    floor(amount * 1.01) for sells, capped at u64 max. Integer arithmetic only.
    """
    if SwapAction(action) is SwapAction.BUY:
        return amount * (BPS_DENOMINATOR - DEFAULT_SLIPPAGE_BPS) // BPS_DENOMINATOR
    return min(amount * (BPS_DENOMINATOR + DEFAULT_SLIPPAGE_BPS) // BPS_DENOMINATOR, U64_MAX)


def validate_amounts(amount: int, other_amount_threshold: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount must be a positive integer", {"field": "amount", "value": amount})
    if amount > U64_MAX:
        raise ValidationError("amount exceeds u64 range", {"field": "amount", "value": amount})
    if isinstance(other_amount_threshold, bool) or not isinstance(other_amount_threshold, int):
        raise ValidationError("otherAmountThreshold must be an integer", {"field": "otherAmountThreshold"})
    if other_amount_threshold < 0 or other_amount_threshold > U64_MAX:
        raise ValidationError(
            "otherAmountThreshold out of u64 range",
            {"field": "otherAmountThreshold", "value": other_amount_threshold},
        )


# =============================================================================
# Builder output
# =============================================================================


@dataclass
class PreparedSwap:
    transaction: PreparedTransaction
    observation: LifecycleObservation
    accounts: SwapAccounts
    action: SwapAction
    trade_type: TradeType
    amount: int
    other_amount_threshold: int

    @property
    def state(self) -> LifecycleState:
        return self.observation.state

    @property
    def terms(self) -> SwapTerms:
        return describe_amounts(self.action, self.trade_type)


@dataclass
class SwapExecution:
    signature: str
    state: LifecycleState
    other_amount_threshold: int
    free_market_signature: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "state": self.state.value,
            "otherAmountThreshold": self.other_amount_threshold,
            "freeMarketSignature": self.free_market_signature,
        }


class SwapOrchestrator:
    def __init__(
        self,
        ledger: LedgerClient,
        signing: SigningContext,
        provisioner: Optional[AccountProvisioner] = None,
        lifecycle: Optional[MarketLifecycleController] = None,
        decoder: Optional[QuoteDecoder] = None,
    ):
        self.ledger = ledger
        self.signing = signing
        self.provisioner = provisioner or AccountProvisioner(ledger, signing)
        self.lifecycle = lifecycle or MarketLifecycleController(ledger, signing)
        self.decoder = decoder or QuoteDecoder()

    async def prepare(
        self,
        market: Pubkey,
        action: SwapAction,
        trade_type: TradeType,
        amount: int,
        other_amount_threshold: int,
        *,
        keep_delegated_lock: bool = False,
    ) -> PreparedSwap:
        """
        Resolve accounts, observe the lifecycle and build the unsent swap.

        Token accounts that do not exist yet are created here; those creations
        are not rolled back if the swap itself later fails.

        With ``keep_delegated_lock`` a FREE market whose swap authority badge
        still exists is built with the delegated signer set.
        """
        action = SwapAction(action)
        trade_type = TradeType(trade_type)
        validate_amounts(amount, other_amount_threshold)

        market_account = await self.ledger.fetch_market(market)
        config_account = await self.ledger.fetch_config(market_account.config)
        base_mint = market_account.base_token_mint
        quote_mint = QUOTE_TOKEN_MINT
        wallet = self.signing.wallet_pubkey

        base_program = await self.provisioner.token_program_of(base_mint)
        quote_program = TOKEN_PROGRAM_ID  # wSOL is a legacy SPL mint

        ensure_ata = self.provisioner.ensure_associated_token_account
        market_base_ata = await ensure_ata(base_mint, market, base_program)
        user_base_ata = await ensure_ata(base_mint, wallet, base_program)
        market_quote_ata = await ensure_ata(quote_mint, market, quote_program)
        user_quote_ata = await ensure_ata(quote_mint, wallet, quote_program)
        protocol_quote_ata = await ensure_ata(quote_mint, config_account.protocol_fee_recipient, quote_program)

        observation = await self.lifecycle.observe(market)
        delegated = observation.state is LifecycleState.LOCKED
        if not delegated and keep_delegated_lock:
            delegated = await self.lifecycle.has_delegated_lock(market)
        if delegated:
            swap_authority = self.signing.swap_authority_pubkey
            badge: Optional[Pubkey] = self.lifecycle.swap_authority_badge(market)
            signers = [self.signing.wallet, self.signing.swap_authority]
        else:
            swap_authority = wallet
            badge = None
            signers = [self.signing.wallet]

        accounts = SwapAccounts(
            config=market_account.config,
            market=market,
            base_token_mint=base_mint,
            quote_token_mint=quote_mint,
            market_base_token_ata=market_base_ata,
            market_quote_token_ata=market_quote_ata,
            user_base_token_account=user_base_ata,
            user_quote_token_account=user_quote_ata,
            protocol_quote_token_ata=protocol_quote_ata,
            swap_authority=swap_authority,
            user=wallet,
            swap_authority_badge=badge,
            base_token_program=base_program,
            quote_token_program=quote_program,
        )
        instruction = ix.permissioned_swap(
            self.signing.program_id,
            accounts,
            action=action,
            trade_type=trade_type,
            amount=amount,
            other_amount_threshold=other_amount_threshold,
        )
        logger.info(
            f"Prepared {action.value}/{trade_type.value} on {market} ({observation.state.value}): "
            f"{describe_amounts(action, trade_type).describe()}"
        )
        return PreparedSwap(
            transaction=PreparedTransaction("permissioned_swap", [instruction], signers),
            observation=observation,
            accounts=accounts,
            action=action,
            trade_type=trade_type,
            amount=amount,
            other_amount_threshold=other_amount_threshold,
        )

    async def swap(
        self,
        market: Pubkey,
        action: SwapAction,
        trade_type: TradeType,
        amount: int,
        other_amount_threshold: Optional[int] = None,
    ) -> SwapExecution:
        if other_amount_threshold is None:
            other_amount_threshold = default_other_amount_threshold(action, amount)
        prepared = await self.prepare(market, action, trade_type, amount, other_amount_threshold)

        free_signature = None
        if prepared.state is LifecycleState.FREE:
            free_signature = await self.lifecycle.ensure_free(market)

        signature = await submit_and_confirm(self.ledger, prepared.transaction)
        return SwapExecution(
            signature=signature,
            state=prepared.state,
            other_amount_threshold=other_amount_threshold,
            free_market_signature=free_signature,
        )

    async def quote(
        self,
        market: Pubkey,
        action: SwapAction,
        trade_type: TradeType,
        amount: int,
        other_amount_threshold: int,
    ) -> SwapQuote:
        """Simulate the swap; never submits the swap or a free_market transition."""
        prepared = await self.prepare(
            market,
            action,
            trade_type,
            amount,
            other_amount_threshold,
            keep_delegated_lock=True,
        )
        result = await simulate(self.ledger, prepared.transaction)
        if result.err is not None:
            raise OnChainRejection(prepared.transaction.label, result.err, logs=result.logs)
        return self.decoder.decode(result.return_data)
