"""Tests for Token Mill instruction encoding."""

import hashlib
import struct

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT

from tokenmill import instructions as ix
from tokenmill.instructions import (
    PRICES_LENGTH,
    SwapAccounts,
    SwapAction,
    TradeType,
    discriminator,
    encode_swap_args,
)
from tokenmill.pda import derive_event_authority_pda

PROGRAM = Pubkey.from_bytes(bytes([7] * 32))


def _key(seed: int) -> Pubkey:
    return Keypair.from_seed(bytes([seed] * 32)).pubkey()


class TestDiscriminator:
    def test_anchor_global_namespace(self):
        expected = hashlib.sha256(b"global:permissioned_swap").digest()[:8]
        assert discriminator("permissioned_swap") == expected

    def test_distinct_per_instruction(self):
        assert discriminator("lock_market") != discriminator("free_market")


class TestSwapArgs:
    def test_layout(self):
        data = encode_swap_args(SwapAction.SELL, TradeType.EXACT_OUTPUT, 7, 2**64 - 1)
        assert data == bytes([1, 1]) + struct.pack("<QQ", 7, 2**64 - 1)

    def test_u64_overflow(self):
        with pytest.raises(ValueError):
            encode_swap_args(SwapAction.BUY, TradeType.EXACT_INPUT, 2**64, 0)


class TestVestingPlanArgs:
    def test_i64_overflow(self):
        with pytest.raises(ValueError):
            ix.create_vesting_plan(
                PROGRAM,
                market=_key(1),
                staking=_key(2),
                stake_position=_key(3),
                vesting_plan=_key(4),
                market_base_token_ata=_key(5),
                user_base_token_ata=_key(6),
                base_token_mint=_key(7),
                base_token_program=TOKEN_PROGRAM_ID,
                user=_key(8),
                start=0,
                amount=1,
                vesting_duration=2**63,
                cliff_duration=0,
            )


class TestSwapAccounts:
    def _accounts(self, badge=None):
        return SwapAccounts(
            config=_key(1),
            market=_key(2),
            base_token_mint=_key(3),
            quote_token_mint=WRAPPED_SOL_MINT,
            market_base_token_ata=_key(4),
            market_quote_token_ata=_key(5),
            user_base_token_account=_key(6),
            user_quote_token_account=_key(7),
            protocol_quote_token_ata=_key(8),
            swap_authority=_key(9),
            user=_key(10),
            swap_authority_badge=badge,
            base_token_program=TOKEN_PROGRAM_ID,
            quote_token_program=TOKEN_PROGRAM_ID,
        )

    def test_absent_optionals_use_program_id(self):
        metas = self._accounts().to_metas(PROGRAM)
        assert metas[9].pubkey == PROGRAM
        assert not metas[9].is_writable
        assert metas[11].pubkey == PROGRAM

    def test_badge_and_signers(self):
        badge = _key(11)
        metas = self._accounts(badge).to_metas(PROGRAM)
        assert metas[11].pubkey == badge
        assert [m.pubkey for m in metas if m.is_signer] == [_key(9), _key(10)]
        assert metas[-2].pubkey == derive_event_authority_pda(PROGRAM)
        assert metas[-1].pubkey == PROGRAM


class TestMarketInstructions:
    def test_set_prices_requires_full_curve(self):
        with pytest.raises(ValueError):
            ix.set_market_prices(PROGRAM, market=_key(1), creator=_key(2), bid_prices=[0] * 3, ask_prices=[0] * 3)

    def test_set_prices_length(self):
        instruction = ix.set_market_prices(
            PROGRAM,
            market=_key(1),
            creator=_key(2),
            bid_prices=list(range(PRICES_LENGTH)),
            ask_prices=list(range(PRICES_LENGTH)),
        )
        assert len(bytes(instruction.data)) == 8 + 2 * PRICES_LENGTH * 8

    def test_fee_share_u16(self):
        with pytest.raises(ValueError):
            ix.create_config(
                PROGRAM,
                config=_key(1),
                payer=_key(2),
                authority=_key(2),
                protocol_fee_recipient=_key(3),
                protocol_fee_share=70_000,
                referral_fee_share=0,
            )
