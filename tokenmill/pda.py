"""
Deterministic Token Mill PDA derivation.

Every program-owned address the orchestrator touches is computed here from
fixed seed tags plus entity keys. Nothing in this module performs I/O.

Seed layouts (tag first, then components in order):
    quote_token_badge  [config, quote_mint]
    market             [base_mint]
    metadata           [metadata_program, base_mint]   (Metaplex program)
    swap_authority     [market, authority]
    market_staking     [market]
    stake_position     [market, user]
    config             []
    __event_authority  []
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from solders.pubkey import Pubkey
from spl.token.constants import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WRAPPED_SOL_MINT,
)

from tokenmill.errors import ValidationError

# Metaplex token metadata program
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# Only wSOL is supported as quote asset
QUOTE_TOKEN_MINT = WRAPPED_SOL_MINT

QUOTE_TOKEN_BADGE_SEED = b"quote_token_badge"
MARKET_SEED = b"market"
METADATA_SEED = b"metadata"
SWAP_AUTHORITY_SEED = b"swap_authority"
MARKET_STAKING_SEED = b"market_staking"
STAKE_POSITION_SEED = b"stake_position"
CONFIG_SEED = b"config"
EVENT_AUTHORITY_SEED = b"__event_authority"

SeedComponent = Union[Pubkey, bytes]


@dataclass(frozen=True)
class SeedSpec:
    """Ordered seed list: literal tag plus entity components."""

    tag: bytes
    components: Tuple[SeedComponent, ...] = ()

    def seeds(self) -> list:
        out = [self.tag] if self.tag else []
        for component in self.components:
            out.append(bytes(component))
        return out


def parse_address(value: Union[str, Pubkey], field_name: str = "address") -> Pubkey:
    """Parse a base58 address, raising ValidationError on malformed input."""
    if isinstance(value, Pubkey):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field_name} is required", {"field": field_name})
    try:
        return Pubkey.from_string(value.strip())
    except Exception as exc:
        raise ValidationError(
            f"Invalid Solana address for {field_name}",
            {"field": field_name, "value": value},
        ) from exc


def derive(seed_spec: SeedSpec, program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Return (address, bump) for a seed spec under program_id."""
    return Pubkey.find_program_address(seed_spec.seeds(), program_id)


# =============================================================================
# Token Mill accounts
# =============================================================================


def quote_token_badge_seeds(config: Pubkey, quote_mint: Pubkey) -> SeedSpec:
    return SeedSpec(QUOTE_TOKEN_BADGE_SEED, (config, quote_mint))


def market_seeds(base_mint: Pubkey) -> SeedSpec:
    return SeedSpec(MARKET_SEED, (base_mint,))


def swap_authority_seeds(market: Pubkey, authority: Pubkey) -> SeedSpec:
    return SeedSpec(SWAP_AUTHORITY_SEED, (market, authority))


def market_staking_seeds(market: Pubkey) -> SeedSpec:
    return SeedSpec(MARKET_STAKING_SEED, (market,))


def stake_position_seeds(market: Pubkey, user: Pubkey) -> SeedSpec:
    return SeedSpec(STAKE_POSITION_SEED, (market, user))


def derive_quote_token_badge_pda(config: Pubkey, quote_mint: Pubkey, program_id: Pubkey) -> Pubkey:
    return derive(quote_token_badge_seeds(config, quote_mint), program_id)[0]


def derive_market_pda(base_mint: Pubkey, program_id: Pubkey) -> Pubkey:
    return derive(market_seeds(base_mint), program_id)[0]


def derive_swap_authority_badge_pda(market: Pubkey, authority: Pubkey, program_id: Pubkey) -> Pubkey:
    return derive(swap_authority_seeds(market, authority), program_id)[0]


def derive_market_staking_pda(market: Pubkey, program_id: Pubkey) -> Pubkey:
    return derive(market_staking_seeds(market), program_id)[0]


def derive_stake_position_pda(market: Pubkey, user: Pubkey, program_id: Pubkey) -> Pubkey:
    return derive(stake_position_seeds(market, user), program_id)[0]


def derive_config_pda(program_id: Pubkey) -> Pubkey:
    """Process-wide config address (no entity components)."""
    return derive(SeedSpec(CONFIG_SEED), program_id)[0]


def derive_event_authority_pda(program_id: Pubkey) -> Pubkey:
    """Anchor event-CPI authority required by emitting instructions."""
    return derive(SeedSpec(EVENT_AUTHORITY_SEED), program_id)[0]


# =============================================================================
# External programs
# =============================================================================


def derive_metadata_pda(base_mint: Pubkey) -> Pubkey:
    """Metaplex metadata PDA: ['metadata', metadata_program, mint] under Metaplex."""
    spec = SeedSpec(METADATA_SEED, (METADATA_PROGRAM_ID, base_mint))
    return derive(spec, METADATA_PROGRAM_ID)[0]


def is_supported_token_program(program_id: Pubkey) -> bool:
    return program_id in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)
