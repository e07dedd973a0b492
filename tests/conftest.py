"""
Token Mill test configuration.

Shared fixtures: deterministic keys, a signing context and an in-memory
FakeLedger that records every submitted or simulated transaction.
"""

import os
import struct
import sys
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

# Add project root to path FIRST
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from tokenmill.client import TokenMillClient
from tokenmill.errors import RemoteUnavailable
from tokenmill.ledger import (
    AccountInfo,
    LedgerClient,
    PreparedTransaction,
    SimulationResult,
    TokenAmount,
)
from tokenmill.pda import QUOTE_TOKEN_MINT, derive_market_pda
from tokenmill.signing import SigningContext

PROGRAM_ID = Pubkey.from_bytes(bytes([7] * 32))
WSOL_DECIMALS = 9


# ==============================================================================
# Fake ledger
# ==============================================================================


class FakeLedger(LedgerClient):
    """
    In-memory ledger.

    - ``accounts`` / ``balances`` are read by the orchestrator
    - successful ``create_*`` / ``lock_market`` transactions materialise every
      writable account they touch that does not exist yet
    - ``confirm_errors[label]`` makes confirmations of that label fail
    """

    def __init__(self):
        self.accounts: Dict[Pubkey, AccountInfo] = {}
        self.balances: Dict[Pubkey, TokenAmount] = {}
        self.assets: Dict[str, Dict[str, Any]] = {}
        self.sent: List[PreparedTransaction] = []
        self.simulated: List[PreparedTransaction] = []
        self.simulation_results: List[SimulationResult] = []
        self.confirm_errors: Dict[str, Any] = {}
        self.send_error: Optional[Exception] = None
        self.materialise_on_reject: Dict[str, bool] = {}
        self._pending: Dict[str, PreparedTransaction] = {}

    # -- helpers --------------------------------------------------------------

    def add_account(self, address: Pubkey, owner: Pubkey = PROGRAM_ID, data: bytes = b"") -> None:
        self.accounts[address] = AccountInfo(data=data, owner=owner, lamports=1_000_000)

    def set_balance(self, address: Pubkey, amount: int, decimals: int = WSOL_DECIMALS) -> None:
        self.balances[address] = TokenAmount(amount=amount, decimals=decimals)
        if address not in self.accounts:
            self.add_account(address, owner=TOKEN_PROGRAM_ID)

    def labels(self) -> List[str]:
        return [tx.label for tx in self.sent]

    def sent_with_label(self, label: str) -> List[PreparedTransaction]:
        return [tx for tx in self.sent if tx.label == label]

    def _materialise(self, tx: PreparedTransaction) -> None:
        for instruction in tx.instructions:
            for meta in instruction.accounts:
                if meta.is_writable and meta.pubkey not in self.accounts:
                    self.add_account(meta.pubkey, owner=instruction.program_id)

    # -- LedgerClient ---------------------------------------------------------

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(tx)
        signature = f"sig{len(self.sent):04d}{tx.label}".ljust(24, "x")
        self._pending[signature] = tx
        return signature

    async def confirm_transaction(self, signature: str) -> Optional[Any]:
        tx = self._pending.pop(signature)
        err = self.confirm_errors.get(tx.label)
        if err is not None:
            if self.materialise_on_reject.get(tx.label):
                self._materialise(tx)
            return err
        if tx.label.startswith("create_") or tx.label == "lock_market":
            self._materialise(tx)
        return None

    async def simulate_transaction(self, tx: PreparedTransaction) -> SimulationResult:
        self.simulated.append(tx)
        if self.simulation_results:
            return self.simulation_results.pop(0)
        return SimulationResult()

    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        return self.accounts.get(address)

    async def get_token_account_balance(self, address: Pubkey) -> Optional[TokenAmount]:
        return self.balances.get(address)

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return 1_461_600

    async def get_asset(self, asset_id: str) -> Dict[str, Any]:
        if self.send_error is not None and isinstance(self.send_error, RemoteUnavailable):
            raise self.send_error
        if asset_id in self.assets:
            return {"jsonrpc": "2.0", "id": "1", "result": self.assets[asset_id]}
        return {"jsonrpc": "2.0", "id": "1", "error": {"code": -32000, "message": "Asset Not Found"}}


# ==============================================================================
# Account data builders
# ==============================================================================


def market_account_data(config: Pubkey, creator: Pubkey, base_mint: Pubkey, quote_mint: Pubkey) -> bytes:
    return bytes(8) + bytes(config) + bytes(creator) + bytes(base_mint) + bytes(quote_mint) + bytes(64)


def config_account_data(
    authority: Pubkey,
    fee_recipient: Pubkey,
    protocol_fee_share: int = 2000,
    referral_fee_share: int = 500,
) -> bytes:
    return (
        bytes(8)
        + bytes(authority)
        + bytes(Pubkey.default())
        + bytes(fee_recipient)
        + struct.pack("<HH", protocol_fee_share, referral_fee_share)
    )


@dataclass
class MarketFixture:
    address: Pubkey
    base_mint: Pubkey
    config: Pubkey
    fee_recipient: Pubkey
    quote_ata: Pubkey


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def program_id() -> Pubkey:
    return PROGRAM_ID


@pytest.fixture
def wallet() -> Keypair:
    return Keypair.from_seed(bytes([1] * 32))


@pytest.fixture
def swap_authority() -> Keypair:
    return Keypair.from_seed(bytes([2] * 32))


@pytest.fixture
def signing(wallet, swap_authority) -> SigningContext:
    return SigningContext(wallet=wallet, swap_authority=swap_authority, program_id=PROGRAM_ID)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def tm_client(ledger, signing) -> TokenMillClient:
    return TokenMillClient(ledger, signing, vesting_ready_timeout_seconds=0.2, readiness_base_delay=0.01)


@pytest.fixture
def make_market(ledger, signing):
    """Factory: install a market, its config and base mint; optionally fund its wSOL ATA."""

    def _make(quote_balance: Optional[Decimal] = None, seed: int = 40) -> MarketFixture:
        base_mint = Keypair.from_seed(bytes([seed] * 32)).pubkey()
        fee_recipient = Keypair.from_seed(bytes([seed + 1] * 32)).pubkey()
        config = signing.config
        market = derive_market_pda(base_mint, PROGRAM_ID)

        ledger.add_account(market, data=market_account_data(config, signing.wallet_pubkey, base_mint, QUOTE_TOKEN_MINT))
        ledger.add_account(config, data=config_account_data(signing.wallet_pubkey, fee_recipient))
        ledger.add_account(base_mint, owner=TOKEN_PROGRAM_ID)

        quote_ata = get_associated_token_address(market, QUOTE_TOKEN_MINT, TOKEN_PROGRAM_ID)
        if quote_balance is not None:
            raw = int(Decimal(quote_balance) * (10 ** WSOL_DECIMALS))
            ledger.set_balance(quote_ata, raw)
        return MarketFixture(market, base_mint, config, fee_recipient, quote_ata)

    return _make


@pytest.fixture
def api_client(tm_client):
    """FastAPI TestClient wired to the fake-ledger client."""
    from fastapi.testclient import TestClient

    from tokenmill_api.fastapi_app import create_app

    return TestClient(create_app(client=tm_client), raise_server_exceptions=False)
