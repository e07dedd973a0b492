"""
TokenMillClient - one method per orchestrated operation.

Each method turns validated input into one or more signed transactions,
submits them in a fixed order, and returns a plain dict for the HTTP layer.
Signing identities come from the SigningContext given at construction.

Usage:
    client = TokenMillClient.from_settings(Settings.from_env())
    result = await client.create_market(name="Mill", symbol="MILL", uri="...",
                                        total_supply=1_000_000,
                                        creator_fee_share=2000, staking_fee_share=6000)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
)

from tokenmill import instructions as ix
from tokenmill.errors import AccountNotFound, RemoteUnavailable, ValidationError
from tokenmill.executor import simulate, submit_and_confirm, wait_until_ready
from tokenmill.instructions import I64_MAX, PRICES_LENGTH, U64_MAX, SwapAction, TradeType
from tokenmill.ledger import LedgerClient, PreparedTransaction, SolanaLedger
from tokenmill.lifecycle import MarketLifecycleController
from tokenmill.pda import (
    QUOTE_TOKEN_MINT,
    derive_market_pda,
    derive_market_staking_pda,
    derive_metadata_pda,
    derive_quote_token_badge_pda,
    derive_stake_position_pda,
    parse_address,
)
from tokenmill.provisioner import AccountProvisioner
from tokenmill.signing import SigningContext
from tokenmill.swap import SwapOrchestrator

logger = logging.getLogger(__name__)

BASE_TOKEN_DECIMALS = 6
MAX_FEE_SHARE_BPS = 10_000
MINT_ACCOUNT_SIZE = 82

# Initial 11-point price curve set right after market creation
BID_PRICE_STEP = 900_000
ASK_PRICE_STEP = 1_000_000

DEFAULT_TOKEN_DECIMALS = 6
DEFAULT_TOKEN_SUPPLY = 100_000_000

Address = Union[str, Pubkey]


def _positive_u64(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer", {"field": field_name})
    if value > U64_MAX:
        raise ValidationError(f"{field_name} exceeds u64 range", {"field": field_name})
    return value


def _fee_share(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_FEE_SHARE_BPS:
        raise ValidationError(
            f"{field_name} must be between 0 and {MAX_FEE_SHARE_BPS} basis points",
            {"field": field_name, "value": value},
        )
    return value


def initial_price_curve() -> tuple:
    """(bid_prices, ask_prices): bid i * 900_000, ask i * 1_000_000 for i in 0..10."""
    bids = [i * BID_PRICE_STEP for i in range(PRICES_LENGTH)]
    asks = [i * ASK_PRICE_STEP for i in range(PRICES_LENGTH)]
    return bids, asks


class TokenMillClient:
    def __init__(
        self,
        ledger: LedgerClient,
        signing: SigningContext,
        *,
        vesting_ready_timeout_seconds: float = 90.0,
        readiness_base_delay: float = 2.0,
    ):
        self.ledger = ledger
        self.signing = signing
        self.vesting_ready_timeout_seconds = vesting_ready_timeout_seconds
        self.readiness_base_delay = readiness_base_delay
        self.provisioner = AccountProvisioner(ledger, signing)
        self.lifecycle = MarketLifecycleController(ledger, signing)
        self.swaps = SwapOrchestrator(ledger, signing, self.provisioner, self.lifecycle)

    @classmethod
    def from_settings(cls, settings) -> "TokenMillClient":
        ledger = SolanaLedger(
            settings.rpc_url,
            commitment=settings.commitment,
            confirm_timeout_seconds=settings.confirm_timeout_seconds,
        )
        return cls(
            ledger,
            settings.signing_context(),
            vesting_ready_timeout_seconds=settings.vesting_ready_timeout_seconds,
        )

    async def close(self) -> None:
        await self.ledger.close()

    @property
    def program_id(self) -> Pubkey:
        return self.signing.program_id

    # =========================================================================
    # Config
    # =========================================================================

    async def create_config(
        self,
        authority: Address,
        protocol_fee_recipient: Address,
        protocol_fee_share: int,
        referral_fee_share: int,
    ) -> Dict[str, Any]:
        authority_key = parse_address(authority, "authority")
        recipient_key = parse_address(protocol_fee_recipient, "protocolFeeRecipient")
        protocol_share = _fee_share(protocol_fee_share, "protocolFeeShare")
        referral_share = _fee_share(referral_fee_share, "referralFeeShare")

        config = Keypair()
        instruction = ix.create_config(
            self.program_id,
            config=config.pubkey(),
            payer=self.signing.wallet_pubkey,
            authority=authority_key,
            protocol_fee_recipient=recipient_key,
            protocol_fee_share=protocol_share,
            referral_fee_share=referral_share,
        )
        tx = PreparedTransaction("create_config", [instruction], [self.signing.wallet, config])
        signature = await submit_and_confirm(self.ledger, tx)
        logger.info(f"Config created at {config.pubkey()}")
        return {"configAddress": str(config.pubkey()), "signature": signature}

    async def create_quote_token_badge(self, quote_mint: Optional[Address] = None) -> Dict[str, Any]:
        mint = parse_address(quote_mint, "quoteTokenMint") if quote_mint else QUOTE_TOKEN_MINT
        badge, signature = await self.provisioner.ensure_quote_token_badge(mint)
        return {"quoteTokenBadge": str(badge), "signature": signature}

    # =========================================================================
    # Markets
    # =========================================================================

    async def create_market(
        self,
        name: str,
        symbol: str,
        uri: str,
        total_supply: int,
        creator_fee_share: int,
        staking_fee_share: int,
    ) -> Dict[str, Any]:
        """
        Create the market, set its initial prices, then lock it to the
        delegated swap authority. The three transactions run in that order.
        """
        for field_name, value in (("name", name), ("symbol", symbol), ("uri", uri)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{field_name} is required", {"field": field_name})
        supply = _positive_u64(total_supply, "totalSupply")
        scaled_supply = supply * 10 ** BASE_TOKEN_DECIMALS
        if scaled_supply > U64_MAX:
            raise ValidationError("totalSupply too large once scaled to base units", {"field": "totalSupply"})
        creator_share = _fee_share(creator_fee_share, "creatorFeeShare")
        staking_share = _fee_share(staking_fee_share, "stakingFeeShare")
        if creator_share + staking_share > MAX_FEE_SHARE_BPS:
            raise ValidationError("creatorFeeShare + stakingFeeShare exceeds 100%", {"field": "stakingFeeShare"})

        config = self.signing.config
        base_mint = Keypair()
        base_mint_key = base_mint.pubkey()
        market = derive_market_pda(base_mint_key, self.program_id)

        instruction = ix.create_market_with_spl(
            self.program_id,
            config=config,
            market=market,
            base_token_mint=base_mint_key,
            base_token_metadata=derive_metadata_pda(base_mint_key),
            market_base_token_ata=get_associated_token_address(market, base_mint_key, TOKEN_PROGRAM_ID),
            quote_token_mint=QUOTE_TOKEN_MINT,
            quote_token_badge=derive_quote_token_badge_pda(config, QUOTE_TOKEN_MINT, self.program_id),
            creator=self.signing.wallet_pubkey,
            name=name,
            symbol=symbol,
            uri=uri,
            total_supply=scaled_supply,
            creator_fee_share=creator_share,
            staking_fee_share=staking_share,
        )
        create_tx = PreparedTransaction("create_market_with_spl", [instruction], [self.signing.wallet, base_mint])
        signature = await submit_and_confirm(self.ledger, create_tx)
        logger.info(f"Market {market} created for mint {base_mint_key}")

        await self.set_prices(market)
        await self.lifecycle.lock_market(market, self.signing.swap_authority_pubkey)

        return {
            "marketAddress": str(market),
            "baseTokenMint": str(base_mint_key),
            "signature": signature,
        }

    async def set_prices(self, market: Pubkey) -> str:
        bids, asks = initial_price_curve()
        instruction = ix.set_market_prices(
            self.program_id,
            market=market,
            creator=self.signing.wallet_pubkey,
            bid_prices=bids,
            ask_prices=asks,
        )
        tx = PreparedTransaction("set_market_prices", [instruction], [self.signing.wallet])
        return await submit_and_confirm(self.ledger, tx)

    async def free_market(self, market: Address) -> Dict[str, Any]:
        market_key = parse_address(market, "market")
        signature = await self.lifecycle.free_market(market_key)
        return {"signature": signature}

    # =========================================================================
    # Vesting / staking
    # =========================================================================

    async def create_vesting(
        self,
        market: Address,
        recipient: Address,
        amount: int,
        duration: int,
        cliff_duration: Optional[int] = None,
    ) -> Dict[str, Any]:
        market_key = parse_address(market, "marketAddress")
        recipient_key = parse_address(recipient, "recipient")
        amount = _positive_u64(amount, "amount")
        duration = _positive_u64(duration, "duration")
        if duration > I64_MAX:
            raise ValidationError("duration exceeds i64 range", {"field": "duration"})
        cliff = cliff_duration or 0
        if isinstance(cliff, bool) or not isinstance(cliff, int) or cliff < 0:
            raise ValidationError("cliffDuration must be a non-negative integer", {"field": "cliffDuration"})
        if cliff > I64_MAX:
            raise ValidationError("cliffDuration exceeds i64 range", {"field": "cliffDuration"})

        market_account = await self.ledger.fetch_market(market_key)
        base_mint = market_account.base_token_mint
        base_program = await self.provisioner.token_program_of(base_mint)
        wallet = self.signing.wallet_pubkey
        if recipient_key != wallet:
            logger.info(f"Vesting for recipient {recipient_key} is held by stake position of {wallet}")

        user_base_ata = await self.provisioner.ensure_associated_token_account(base_mint, wallet, base_program)
        await self.provisioner.ensure_staking_activated(market_key)
        await self.provisioner.ensure_stake_position_created(market_key)

        vesting_plan = Keypair()
        instruction = ix.create_vesting_plan(
            self.program_id,
            market=market_key,
            staking=derive_market_staking_pda(market_key, self.program_id),
            stake_position=derive_stake_position_pda(market_key, wallet, self.program_id),
            vesting_plan=vesting_plan.pubkey(),
            market_base_token_ata=get_associated_token_address(market_key, base_mint, base_program),
            user_base_token_ata=user_base_ata,
            base_token_mint=base_mint,
            base_token_program=base_program,
            user=wallet,
            start=int(time.time()),
            amount=amount,
            vesting_duration=duration,
            cliff_duration=cliff,
        )
        tx = PreparedTransaction("create_vesting_plan", [instruction], [self.signing.wallet, vesting_plan])
        signature = await submit_and_confirm(self.ledger, tx)
        return {"vestingAccount": str(vesting_plan.pubkey()), "signature": signature}

    async def release_vesting(
        self,
        market: Address,
        staking: Address,
        stake_position: Address,
        vesting_plan: Address,
        base_token_mint: Address,
    ) -> Dict[str, Any]:
        """
        Release vested tokens once the program accepts it.

        Readiness is checked by simulating ``release`` with exponential backoff;
        PreconditionUnmet is raised if it never simulates cleanly in time.
        """
        market_key = parse_address(market, "marketAddress")
        staking_key = parse_address(staking, "stakingAddress")
        position_key = parse_address(stake_position, "stakePositionAddress")
        plan_key = parse_address(vesting_plan, "vestingPlanAddress")
        mint_key = parse_address(base_token_mint, "baseTokenMint")

        base_program = await self.provisioner.token_program_of(mint_key)
        wallet = self.signing.wallet_pubkey
        instruction = ix.release(
            self.program_id,
            market=market_key,
            staking=staking_key,
            stake_position=position_key,
            vesting_plan=plan_key,
            market_base_token_ata=get_associated_token_address(market_key, mint_key, base_program),
            user_base_token_ata=get_associated_token_address(wallet, mint_key, base_program),
            base_token_mint=mint_key,
            base_token_program=base_program,
            user=wallet,
        )
        tx = PreparedTransaction("release", [instruction], [self.signing.wallet])

        async def releasable() -> bool:
            result = await simulate(self.ledger, tx)
            return result.success

        attempts = await wait_until_ready(
            releasable,
            timeout_seconds=self.vesting_ready_timeout_seconds,
            base_delay=self.readiness_base_delay,
            description="vesting release",
        )
        logger.info(f"Vesting {plan_key} releasable after {attempts} attempt(s)")
        signature = await submit_and_confirm(self.ledger, tx)
        return {"signature": signature}

    async def stake(self, market: Address, amount: int, lockup_period: Optional[int] = None) -> Dict[str, Any]:
        market_key = parse_address(market, "marketAddress")
        amount = _positive_u64(amount, "amount")
        if lockup_period:
            logger.info(f"lockupPeriod={lockup_period} requested; deposits carry no lockup")

        market_account = await self.ledger.fetch_market(market_key)
        base_mint = market_account.base_token_mint
        base_program = await self.provisioner.token_program_of(base_mint)
        wallet = self.signing.wallet_pubkey

        await self.provisioner.ensure_staking_activated(market_key)
        await self.provisioner.ensure_stake_position_created(market_key)
        user_base_ata = await self.provisioner.ensure_associated_token_account(base_mint, wallet, base_program)

        instruction = ix.deposit(
            self.program_id,
            market=market_key,
            staking=derive_market_staking_pda(market_key, self.program_id),
            stake_position=derive_stake_position_pda(market_key, wallet, self.program_id),
            market_base_token_ata=get_associated_token_address(market_key, base_mint, base_program),
            user_base_token_account=user_base_ata,
            base_token_mint=base_mint,
            base_token_program=base_program,
            user=wallet,
            amount=amount,
        )
        tx = PreparedTransaction("deposit", [instruction], [self.signing.wallet])
        signature = await submit_and_confirm(self.ledger, tx)
        return {"signature": signature}

    # =========================================================================
    # Swaps
    # =========================================================================

    async def swap(
        self,
        market: Address,
        action: str,
        trade_type: str,
        amount: int,
        other_amount_threshold: Optional[int] = None,
    ) -> Dict[str, Any]:
        market_key = parse_address(market, "market")
        execution = await self.swaps.swap(
            market_key,
            _swap_action(action),
            _trade_type(trade_type),
            amount,
            other_amount_threshold,
        )
        return execution.to_dict()

    async def quote_swap(
        self,
        market: Address,
        action: str,
        trade_type: str,
        amount: int,
        other_amount_threshold: int,
    ) -> Dict[str, Any]:
        market_key = parse_address(market, "market")
        quote = await self.swaps.quote(
            market_key,
            _swap_action(action),
            _trade_type(trade_type),
            amount,
            other_amount_threshold,
        )
        return quote.to_dict()

    # =========================================================================
    # Tokens
    # =========================================================================

    async def create_token(
        self,
        decimals: int = DEFAULT_TOKEN_DECIMALS,
        supply: int = DEFAULT_TOKEN_SUPPLY,
    ) -> Dict[str, Any]:
        """Create a legacy SPL mint, the wallet's ATA, and mint ``supply`` whole tokens to it."""
        if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 9:
            raise ValidationError("decimals must be between 0 and 9", {"field": "decimals"})
        supply = _positive_u64(supply, "supply")
        raw_supply = supply * 10 ** decimals
        if raw_supply > U64_MAX:
            raise ValidationError("supply too large for the given decimals", {"field": "supply"})

        wallet = self.signing.wallet_pubkey
        mint = Keypair()
        mint_key = mint.pubkey()
        rent = await self.ledger.get_minimum_balance_for_rent_exemption(MINT_ACCOUNT_SIZE)
        user_ata = get_associated_token_address(wallet, mint_key, TOKEN_PROGRAM_ID)

        instructions = [
            create_account(
                CreateAccountParams(
                    from_pubkey=wallet,
                    to_pubkey=mint_key,
                    lamports=rent,
                    space=MINT_ACCOUNT_SIZE,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=decimals,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint_key,
                    mint_authority=wallet,
                    freeze_authority=None,
                )
            ),
            create_idempotent_associated_token_account(wallet, wallet, mint_key, token_program_id=TOKEN_PROGRAM_ID),
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint_key,
                    dest=user_ata,
                    mint_authority=wallet,
                    amount=raw_supply,
                    signers=[],
                )
            ),
        ]
        tx = PreparedTransaction("create_token", instructions, [self.signing.wallet, mint])
        signature = await submit_and_confirm(self.ledger, tx)
        logger.info(f"Minted {supply} tokens of {mint_key} to {wallet}")
        return {"mint": str(mint_key), "signature": signature}

    async def get_token_metadata(self, mint: Address) -> Dict[str, Any]:
        mint_key = parse_address(mint, "mint")
        response = await self.ledger.get_asset(str(mint_key))
        error = response.get("error")
        if error:
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            if "Asset Not Found" in message:
                raise AccountNotFound("asset", str(mint_key))
            raise RemoteUnavailable(f"getAsset failed: {message}", {"asset": str(mint_key)})
        return response.get("result", response)


def _swap_action(value: Union[str, SwapAction]) -> SwapAction:
    try:
        return SwapAction(value)
    except ValueError:
        raise ValidationError("action must be 'buy' or 'sell'", {"field": "action", "value": value}) from None


def _trade_type(value: Union[str, TradeType]) -> TradeType:
    try:
        return TradeType(value)
    except ValueError:
        raise ValidationError(
            "tradeType must be 'exactInput' or 'exactOutput'",
            {"field": "tradeType", "value": value},
        ) from None
