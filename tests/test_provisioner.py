"""
Tests for idempotent account provisioning.

Covers:
- Exactly one creation across repeated ensure() calls
- Verbatim on-chain errors
- "Already in use" races treated as success once the account exists
- ATA creation for legacy and Token-2022 mints
"""

import pytest
from solders.keypair import Keypair
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import get_associated_token_address

from tokenmill.errors import AccountNotFound, OnChainRejection, ValidationError
from tokenmill.ledger import PreparedTransaction
from tokenmill.pda import (
    derive_market_staking_pda,
    derive_quote_token_badge_pda,
    derive_stake_position_pda,
)
from tokenmill.provisioner import AccountProvisioner

MARKET = Keypair.from_seed(bytes([30] * 32)).pubkey()
MINT = Keypair.from_seed(bytes([31] * 32)).pubkey()


@pytest.fixture
def provisioner(ledger, signing):
    return AccountProvisioner(ledger, signing)


class TestEnsure:
    """Generic check-then-create."""

    @pytest.mark.asyncio
    async def test_second_call_submits_nothing(self, provisioner, ledger, program_id):
        """Two sequential ensures -> one creation transaction."""
        first = await provisioner.ensure_staking_activated(MARKET)
        second = await provisioner.ensure_staking_activated(MARKET)

        assert first is not None
        assert second is None
        assert ledger.labels() == ["create_staking"]

    @pytest.mark.asyncio
    async def test_existing_account_is_noop(self, provisioner, ledger, program_id):
        ledger.add_account(derive_market_staking_pda(MARKET, program_id))
        assert await provisioner.ensure_staking_activated(MARKET) is None
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_build_not_called_when_present(self, provisioner, ledger, signing):
        address = Keypair.from_seed(bytes([32] * 32)).pubkey()
        ledger.add_account(address)
        calls = []

        def build():
            calls.append(1)
            return PreparedTransaction("create_thing", [], [signing.wallet])

        assert await provisioner.ensure("thing", address, build) is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_on_chain_error_is_verbatim(self, provisioner, ledger):
        err = {"InstructionError": [0, {"Custom": 6001}]}
        ledger.confirm_errors["create_staking"] = err

        with pytest.raises(OnChainRejection) as exc_info:
            await provisioner.ensure_staking_activated(MARKET)

        assert exc_info.value.err == err
        assert exc_info.value.code == "CHAIN_001"
        assert exc_info.value.signature

    @pytest.mark.asyncio
    async def test_concurrent_creation_is_benign(self, provisioner, ledger, program_id):
        """Rejected as already in use, but the account now exists -> success."""
        ledger.confirm_errors["create_staking"] = "Allocate: account Address already in use"
        ledger.materialise_on_reject["create_staking"] = True

        assert await provisioner.ensure_staking_activated(MARKET) is None
        assert derive_market_staking_pda(MARKET, program_id) in ledger.accounts

    @pytest.mark.asyncio
    async def test_already_in_use_without_account_still_fails(self, provisioner, ledger):
        ledger.confirm_errors["create_staking"] = "already in use"

        with pytest.raises(OnChainRejection):
            await provisioner.ensure_staking_activated(MARKET)


class TestStakePosition:
    @pytest.mark.asyncio
    async def test_creates_wallet_position(self, provisioner, ledger, signing, program_id):
        await provisioner.ensure_stake_position_created(MARKET)

        tx = ledger.sent_with_label("create_stake_position")[0]
        position = derive_stake_position_pda(MARKET, signing.wallet_pubkey, program_id)
        assert tx.instructions[0].accounts[1].pubkey == position
        assert tx.signer_pubkeys() == [signing.wallet_pubkey]

    @pytest.mark.asyncio
    async def test_rejects_foreign_user(self, provisioner):
        with pytest.raises(ValidationError):
            await provisioner.ensure_stake_position_created(MARKET, user=MINT)


class TestAssociatedTokenAccounts:
    """CreateIdempotent ATA instruction for both token programs."""

    @pytest.mark.asyncio
    async def test_legacy_ata(self, provisioner, ledger, signing):
        ata = await provisioner.ensure_associated_token_account(MINT, signing.wallet_pubkey)

        assert ata == get_associated_token_address(signing.wallet_pubkey, MINT, TOKEN_PROGRAM_ID)
        instruction = ledger.sent[0].instructions[0]
        assert instruction.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
        assert bytes(instruction.data) == b"\x01"
        assert instruction.accounts[1].pubkey == ata
        assert instruction.accounts[-1].pubkey == TOKEN_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_token_2022_ata(self, provisioner, ledger, signing):
        ata = await provisioner.ensure_associated_token_account(MINT, MARKET, TOKEN_2022_PROGRAM_ID)

        assert ata == get_associated_token_address(MARKET, MINT, TOKEN_2022_PROGRAM_ID)
        assert ledger.sent[0].instructions[0].accounts[-1].pubkey == TOKEN_2022_PROGRAM_ID
        assert ata != get_associated_token_address(MARKET, MINT, TOKEN_PROGRAM_ID)

    @pytest.mark.asyncio
    async def test_existing_ata_returns_address_without_tx(self, provisioner, ledger, signing):
        ata = get_associated_token_address(signing.wallet_pubkey, MINT)
        ledger.add_account(ata, owner=TOKEN_PROGRAM_ID)

        assert await provisioner.ensure_associated_token_account(MINT, signing.wallet_pubkey) == ata
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_unsupported_token_program(self, provisioner, program_id):
        with pytest.raises(ValidationError):
            await provisioner.ensure_associated_token_account(MINT, MARKET, program_id)


class TestQuoteTokenBadge:
    @pytest.mark.asyncio
    async def test_badge_is_idempotent(self, provisioner, ledger, signing, program_id):
        badge, signature = await provisioner.ensure_quote_token_badge()
        again, second = await provisioner.ensure_quote_token_badge()

        assert badge == again == derive_quote_token_badge_pda(signing.config, WRAPPED_SOL_MINT, program_id)
        assert signature is not None
        assert second is None
        assert ledger.labels() == ["create_quote_asset_badge"]


class TestTokenProgramOf:
    @pytest.mark.asyncio
    async def test_reads_mint_owner(self, provisioner, ledger):
        ledger.add_account(MINT, owner=TOKEN_2022_PROGRAM_ID)
        assert await provisioner.token_program_of(MINT) == TOKEN_2022_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_missing_mint(self, provisioner):
        with pytest.raises(AccountNotFound):
            await provisioner.token_program_of(MINT)

    @pytest.mark.asyncio
    async def test_non_token_owner(self, provisioner, ledger, program_id):
        ledger.add_account(MINT, owner=program_id)
        with pytest.raises(ValidationError):
            await provisioner.token_program_of(MINT)
