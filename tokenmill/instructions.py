"""
Token Mill instruction builders.

Anchor instruction data is ``sha256("global:<snake_name>")[:8]`` followed by
Borsh-encoded arguments. Enum arguments (swap action, trade type) are
empty-payload variants, so each encodes as a single variant-index byte.

Builders return unsigned ``solders`` instructions; signing and submission
belong to the executor.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT as SYSVAR_RENT_PUBKEY
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from tokenmill.pda import (
    METADATA_PROGRAM_ID,
    derive_event_authority_pda,
)

U64_MAX = 2**64 - 1
U16_MAX = 2**16 - 1
I64_MAX = 2**63 - 1

# Market price curve has a fixed number of points
PRICES_LENGTH = 11


def discriminator(name: str, prefix: str = "global") -> bytes:
    return hashlib.sha256(f"{prefix}:{name}".encode()).digest()[:8]


# =============================================================================
# Swap enums
# =============================================================================


class SwapAction(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def index(self) -> int:
        return 0 if self is SwapAction.BUY else 1

    def variant(self) -> Dict[str, dict]:
        return {self.value: {}}


class TradeType(str, Enum):
    EXACT_INPUT = "exactInput"
    EXACT_OUTPUT = "exactOutput"

    @property
    def index(self) -> int:
        return 0 if self is TradeType.EXACT_INPUT else 1

    def variant(self) -> Dict[str, dict]:
        return {self.value: {}}


# =============================================================================
# Borsh packing
# =============================================================================


def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u16(value: int) -> bytes:
    if not 0 <= value <= U16_MAX:
        raise ValueError(f"u16 out of range: {value}")
    return struct.pack("<H", value)


def _u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def _i64(value: int) -> bytes:
    if not -I64_MAX - 1 <= value <= I64_MAX:
        raise ValueError(f"i64 out of range: {value}")
    return struct.pack("<q", value)


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _pubkey(value: Pubkey) -> bytes:
    return bytes(value)


def _meta(pubkey: Pubkey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


def _event_metas(program_id: Pubkey) -> List[AccountMeta]:
    return [_meta(derive_event_authority_pda(program_id)), _meta(program_id)]


def _ix(program_id: Pubkey, name: str, args: bytes, metas: Sequence[AccountMeta]) -> Instruction:
    return Instruction(program_id, discriminator(name) + args, list(metas))


# =============================================================================
# Config / badges
# =============================================================================


def create_config(
    program_id: Pubkey,
    *,
    config: Pubkey,
    payer: Pubkey,
    authority: Pubkey,
    protocol_fee_recipient: Pubkey,
    protocol_fee_share: int,
    referral_fee_share: int,
) -> Instruction:
    args = (
        _pubkey(authority)
        + _pubkey(protocol_fee_recipient)
        + _u16(protocol_fee_share)
        + _u16(referral_fee_share)
    )
    metas = [
        _meta(config, signer=True, writable=True),
        _meta(payer, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
    ]
    return _ix(program_id, "create_config", args, metas)


def create_quote_asset_badge(
    program_id: Pubkey,
    *,
    config: Pubkey,
    quote_token_badge: Pubkey,
    token_mint: Pubkey,
    authority: Pubkey,
) -> Instruction:
    metas = [
        _meta(config),
        _meta(quote_token_badge, writable=True),
        _meta(token_mint),
        _meta(authority, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "create_quote_asset_badge", b"", metas)


# =============================================================================
# Market lifecycle
# =============================================================================


def create_market_with_spl(
    program_id: Pubkey,
    *,
    config: Pubkey,
    market: Pubkey,
    base_token_mint: Pubkey,
    base_token_metadata: Pubkey,
    market_base_token_ata: Pubkey,
    quote_token_mint: Pubkey,
    quote_token_badge: Pubkey,
    creator: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    total_supply: int,
    creator_fee_share: int,
    staking_fee_share: int,
) -> Instruction:
    args = (
        _string(name)
        + _string(symbol)
        + _string(uri)
        + _u64(total_supply)
        + _u16(creator_fee_share)
        + _u16(staking_fee_share)
    )
    metas = [
        _meta(config),
        _meta(market, writable=True),
        _meta(base_token_mint, signer=True, writable=True),
        _meta(base_token_metadata, writable=True),
        _meta(market_base_token_ata, writable=True),
        _meta(quote_token_mint),
        _meta(quote_token_badge),
        _meta(creator, signer=True, writable=True),
        _meta(METADATA_PROGRAM_ID),
        _meta(SYSVAR_RENT_PUBKEY),
        _meta(TOKEN_PROGRAM_ID),
        _meta(ASSOCIATED_TOKEN_PROGRAM_ID),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "create_market_with_spl", args, metas)


def set_market_prices(
    program_id: Pubkey,
    *,
    market: Pubkey,
    creator: Pubkey,
    bid_prices: Sequence[int],
    ask_prices: Sequence[int],
) -> Instruction:
    if len(bid_prices) != PRICES_LENGTH or len(ask_prices) != PRICES_LENGTH:
        raise ValueError(f"price curves must have {PRICES_LENGTH} points")
    args = b"".join(_u64(p) for p in bid_prices) + b"".join(_u64(p) for p in ask_prices)
    metas = [
        _meta(market, writable=True),
        _meta(creator, signer=True),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "set_market_prices", args, metas)


def lock_market(
    program_id: Pubkey,
    *,
    market: Pubkey,
    swap_authority_badge: Pubkey,
    creator: Pubkey,
    swap_authority: Pubkey,
) -> Instruction:
    metas = [
        _meta(market, writable=True),
        _meta(swap_authority_badge, writable=True),
        _meta(creator, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "lock_market", _pubkey(swap_authority), metas)


def free_market(
    program_id: Pubkey,
    *,
    market: Pubkey,
    swap_authority: Pubkey,
    swap_authority_badge: Pubkey,
) -> Instruction:
    metas = [
        _meta(market, writable=True),
        _meta(swap_authority_badge, writable=True),
        _meta(swap_authority, signer=True, writable=True),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "free_market", b"", metas)


# =============================================================================
# Staking / vesting
# =============================================================================


def create_staking(program_id: Pubkey, *, market: Pubkey, staking: Pubkey, payer: Pubkey) -> Instruction:
    metas = [
        _meta(market),
        _meta(staking, writable=True),
        _meta(payer, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "create_staking", b"", metas)


def create_stake_position(
    program_id: Pubkey, *, market: Pubkey, stake_position: Pubkey, user: Pubkey
) -> Instruction:
    metas = [
        _meta(market),
        _meta(stake_position, writable=True),
        _meta(user, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "create_stake_position", b"", metas)


def deposit(
    program_id: Pubkey,
    *,
    market: Pubkey,
    staking: Pubkey,
    stake_position: Pubkey,
    market_base_token_ata: Pubkey,
    user_base_token_account: Pubkey,
    base_token_mint: Pubkey,
    base_token_program: Pubkey,
    user: Pubkey,
    amount: int,
) -> Instruction:
    metas = [
        _meta(market, writable=True),
        _meta(staking, writable=True),
        _meta(stake_position, writable=True),
        _meta(market_base_token_ata, writable=True),
        _meta(user_base_token_account, writable=True),
        _meta(base_token_mint),
        _meta(user, signer=True),
        _meta(base_token_program),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "deposit", _u64(amount), metas)


def create_vesting_plan(
    program_id: Pubkey,
    *,
    market: Pubkey,
    staking: Pubkey,
    stake_position: Pubkey,
    vesting_plan: Pubkey,
    market_base_token_ata: Pubkey,
    user_base_token_ata: Pubkey,
    base_token_mint: Pubkey,
    base_token_program: Pubkey,
    user: Pubkey,
    start: int,
    amount: int,
    vesting_duration: int,
    cliff_duration: int,
) -> Instruction:
    args = _i64(start) + _u64(amount) + _i64(vesting_duration) + _i64(cliff_duration)
    metas = [
        _meta(market, writable=True),
        _meta(staking, writable=True),
        _meta(stake_position, writable=True),
        _meta(vesting_plan, signer=True, writable=True),
        _meta(market_base_token_ata, writable=True),
        _meta(user_base_token_ata, writable=True),
        _meta(base_token_mint),
        _meta(user, signer=True, writable=True),
        _meta(base_token_program),
        _meta(SYSTEM_PROGRAM_ID),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "create_vesting_plan", args, metas)


def release(
    program_id: Pubkey,
    *,
    market: Pubkey,
    staking: Pubkey,
    stake_position: Pubkey,
    vesting_plan: Pubkey,
    market_base_token_ata: Pubkey,
    user_base_token_ata: Pubkey,
    base_token_mint: Pubkey,
    base_token_program: Pubkey,
    user: Pubkey,
) -> Instruction:
    metas = [
        _meta(market, writable=True),
        _meta(staking, writable=True),
        _meta(stake_position, writable=True),
        _meta(vesting_plan, writable=True),
        _meta(market_base_token_ata, writable=True),
        _meta(user_base_token_ata, writable=True),
        _meta(base_token_mint),
        _meta(user, signer=True),
        _meta(base_token_program),
        *_event_metas(program_id),
    ]
    return _ix(program_id, "release", b"", metas)


# =============================================================================
# Swap
# =============================================================================


@dataclass(frozen=True)
class SwapAccounts:
    """Account set of a permissioned swap, in program order."""

    config: Pubkey
    market: Pubkey
    base_token_mint: Pubkey
    quote_token_mint: Pubkey
    market_base_token_ata: Pubkey
    market_quote_token_ata: Pubkey
    user_base_token_account: Pubkey
    user_quote_token_account: Pubkey
    protocol_quote_token_ata: Pubkey
    swap_authority: Pubkey
    user: Pubkey
    swap_authority_badge: Optional[Pubkey] = None
    referral_token_account: Optional[Pubkey] = None
    base_token_program: Pubkey = TOKEN_PROGRAM_ID
    quote_token_program: Pubkey = TOKEN_PROGRAM_ID

    def to_metas(self, program_id: Pubkey) -> List[AccountMeta]:
        # Anchor encodes an absent optional account as the program id
        badge = self.swap_authority_badge or program_id
        referral = self.referral_token_account or program_id
        return [
            _meta(self.config),
            _meta(self.market, writable=True),
            _meta(self.base_token_mint),
            _meta(self.quote_token_mint),
            _meta(self.market_base_token_ata, writable=True),
            _meta(self.market_quote_token_ata, writable=True),
            _meta(self.user_base_token_account, writable=True),
            _meta(self.user_quote_token_account, writable=True),
            _meta(self.protocol_quote_token_ata, writable=True),
            _meta(referral, writable=self.referral_token_account is not None),
            _meta(self.swap_authority, signer=True),
            _meta(badge),
            _meta(self.user, signer=True, writable=True),
            _meta(self.base_token_program),
            _meta(self.quote_token_program),
            *_event_metas(program_id),
        ]


def encode_swap_args(action: SwapAction, trade_type: TradeType, amount: int, other_amount_threshold: int) -> bytes:
    return _u8(action.index) + _u8(trade_type.index) + _u64(amount) + _u64(other_amount_threshold)


def permissioned_swap(
    program_id: Pubkey,
    accounts: SwapAccounts,
    *,
    action: SwapAction,
    trade_type: TradeType,
    amount: int,
    other_amount_threshold: int,
) -> Instruction:
    args = encode_swap_args(action, trade_type, amount, other_amount_threshold)
    return _ix(program_id, "permissioned_swap", args, accounts.to_metas(program_id))
