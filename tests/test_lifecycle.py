"""Tests for the LOCKED/FREE market lifecycle."""

from decimal import Decimal

import pytest

from tokenmill.errors import OnChainRejection, PreconditionUnmet
from tokenmill.instructions import discriminator
from tokenmill.lifecycle import (
    FREE_MARKET_QUOTE_THRESHOLD,
    LifecycleState,
    MarketLifecycleController,
    classify,
)


@pytest.fixture
def lifecycle(ledger, signing):
    return MarketLifecycleController(ledger, signing)


class TestObserve:
    """State is FREE iff quote balance >= 69, read fresh every call."""

    @pytest.mark.asyncio
    async def test_exact_threshold_is_free(self, lifecycle, make_market):
        market = make_market(quote_balance=Decimal("69"))
        observation = await lifecycle.observe(market.address)
        assert observation.state is LifecycleState.FREE
        assert observation.quote_balance == Decimal("69")

    @pytest.mark.asyncio
    async def test_just_below_threshold_is_locked(self, lifecycle, make_market):
        market = make_market(quote_balance=Decimal("68.999999999"))
        observation = await lifecycle.observe(market.address)
        assert observation.state is LifecycleState.LOCKED

    @pytest.mark.asyncio
    async def test_missing_token_account_reads_zero(self, lifecycle, make_market):
        market = make_market(quote_balance=None)
        observation = await lifecycle.observe(market.address)
        assert observation.state is LifecycleState.LOCKED
        assert observation.quote_balance == 0

    @pytest.mark.asyncio
    async def test_no_hysteresis(self, lifecycle, ledger, make_market):
        """A market that drains below the threshold reads LOCKED again."""
        market = make_market(quote_balance=Decimal("100"))
        assert (await lifecycle.observe(market.address)).is_free

        ledger.set_balance(market.quote_ata, 10 * 10**9)
        assert (await lifecycle.observe(market.address)).state is LifecycleState.LOCKED

    def test_classify(self):
        assert classify(FREE_MARKET_QUOTE_THRESHOLD) is LifecycleState.FREE
        assert classify(Decimal("0")) is LifecycleState.LOCKED


class TestFreeMarket:
    @pytest.mark.asyncio
    async def test_locked_market_rejected_before_building(self, lifecycle, ledger, make_market):
        """Below threshold: PreconditionUnmet, nothing submitted."""
        market = make_market(quote_balance=Decimal("12.5"))

        with pytest.raises(PreconditionUnmet) as exc_info:
            await lifecycle.free_market(market.address)

        assert ledger.sent == []
        assert exc_info.value.observed == Decimal("12.5")
        assert exc_info.value.required == FREE_MARKET_QUOTE_THRESHOLD
        assert exc_info.value.details == {"observed": "12.5", "required": "69"}

    @pytest.mark.asyncio
    async def test_free_market_signed_by_wallet_and_authority(self, lifecycle, ledger, signing, make_market):
        market = make_market(quote_balance=Decimal("70"))

        signature = await lifecycle.free_market(market.address)

        assert signature
        tx = ledger.sent_with_label("free_market")[0]
        assert tx.signer_pubkeys() == [signing.wallet_pubkey, signing.swap_authority_pubkey]
        instruction = tx.instructions[0]
        assert bytes(instruction.data) == discriminator("free_market")
        assert instruction.accounts[1].pubkey == lifecycle.swap_authority_badge(market.address)

    @pytest.mark.asyncio
    async def test_on_chain_error_surfaces(self, lifecycle, ledger, make_market):
        market = make_market(quote_balance=Decimal("70"))
        ledger.confirm_errors["free_market"] = {"InstructionError": [0, {"Custom": 6010}]}

        with pytest.raises(OnChainRejection):
            await lifecycle.free_market(market.address)
        assert ledger.labels() == ["free_market"]


class TestEnsureFree:
    @pytest.mark.asyncio
    async def test_noop_when_badge_absent(self, lifecycle, ledger, make_market):
        market = make_market(quote_balance=Decimal("80"))
        assert await lifecycle.ensure_free(market.address) is None
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_submits_when_badge_present(self, lifecycle, ledger, make_market):
        market = make_market(quote_balance=Decimal("80"))
        ledger.add_account(lifecycle.swap_authority_badge(market.address))

        assert await lifecycle.ensure_free(market.address)
        assert ledger.labels() == ["free_market"]


class TestLockMarket:
    @pytest.mark.asyncio
    async def test_lock_encodes_authority(self, lifecycle, ledger, signing, make_market):
        market = make_market()

        await lifecycle.lock_market(market.address)

        tx = ledger.sent_with_label("lock_market")[0]
        assert tx.signer_pubkeys() == [signing.wallet_pubkey]
        assert bytes(tx.instructions[0].data) == discriminator("lock_market") + bytes(signing.swap_authority_pubkey)
        # badge created by the lock
        assert lifecycle.swap_authority_badge(market.address) in ledger.accounts
