"""
Ledger collaborator for Token Mill orchestration.

``LedgerClient`` is the narrow surface the orchestrator needs from Solana:
send, confirm, simulate, account reads and token balances. ``SolanaLedger``
implements it over ``solana-py``'s ``AsyncClient``; tests substitute an
in-memory fake.

Usage:
    ledger = SolanaLedger(settings.rpc_url)
    info = await ledger.get_account_info(address)
    await ledger.close()
"""

from __future__ import annotations

import asyncio
import logging
import struct
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp
import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from tokenmill.errors import AccountNotFound, OnChainRejection, RemoteUnavailable

logger = logging.getLogger(__name__)

ANCHOR_DISCRIMINATOR_SIZE = 8
PUBKEY_SIZE = 32


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class PreparedTransaction:
    """Unsent transaction: instructions plus the keypairs that must sign.

    The first signer pays fees.
    """

    label: str
    instructions: List[Instruction]
    signers: List[Keypair]

    @property
    def fee_payer(self) -> Pubkey:
        return self.signers[0].pubkey()

    def signer_pubkeys(self) -> List[Pubkey]:
        return [kp.pubkey() for kp in self.signers]


@dataclass
class AccountInfo:
    data: bytes
    owner: Pubkey
    lamports: int = 0


@dataclass
class TokenAmount:
    """Raw token balance plus mint decimals."""

    amount: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount) / (Decimal(10) ** self.decimals)


@dataclass
class SimulationResult:
    err: Optional[Any] = None
    logs: List[str] = field(default_factory=list)
    return_data: Optional[Any] = None
    units_consumed: int = 0

    @property
    def success(self) -> bool:
        return self.err is None


@dataclass
class MarketAccount:
    address: Pubkey
    config: Pubkey
    creator: Pubkey
    base_token_mint: Pubkey
    quote_token_mint: Pubkey

    @classmethod
    def decode(cls, address: Pubkey, data: bytes) -> "MarketAccount":
        keys = _read_pubkeys(data, 4)
        return cls(address, *keys)


@dataclass
class ConfigAccount:
    address: Pubkey
    authority: Pubkey
    pending_authority: Pubkey
    protocol_fee_recipient: Pubkey
    protocol_fee_share: int
    referral_fee_share: int

    @classmethod
    def decode(cls, address: Pubkey, data: bytes) -> "ConfigAccount":
        authority, pending, recipient = _read_pubkeys(data, 3)
        offset = ANCHOR_DISCRIMINATOR_SIZE + 3 * PUBKEY_SIZE
        if len(data) < offset + 4:
            raise ValueError("config account data too short")
        protocol_share, referral_share = struct.unpack_from("<HH", data, offset)
        return cls(address, authority, pending, recipient, protocol_share, referral_share)


def _read_pubkeys(data: bytes, count: int) -> List[Pubkey]:
    end = ANCHOR_DISCRIMINATOR_SIZE + count * PUBKEY_SIZE
    if len(data) < end:
        raise ValueError(f"account data too short: {len(data)} < {end}")
    return [
        Pubkey.from_bytes(data[start:start + PUBKEY_SIZE])
        for start in range(ANCHOR_DISCRIMINATOR_SIZE, end, PUBKEY_SIZE)
    ]


# =============================================================================
# Collaborator contract
# =============================================================================


class LedgerClient(ABC):
    """Operations the orchestrator consumes from the ledger."""

    @abstractmethod
    async def send_transaction(self, tx: PreparedTransaction) -> str:
        """Sign and submit; returns the signature."""

    @abstractmethod
    async def confirm_transaction(self, signature: str) -> Optional[Any]:
        """Block until terminal status; returns the on-chain error or None."""

    @abstractmethod
    async def simulate_transaction(self, tx: PreparedTransaction) -> SimulationResult:
        ...

    @abstractmethod
    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        ...

    @abstractmethod
    async def get_token_account_balance(self, address: Pubkey) -> Optional[TokenAmount]:
        """None when the token account does not exist."""

    @abstractmethod
    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        ...

    @abstractmethod
    async def get_asset(self, asset_id: str) -> Dict[str, Any]:
        """DAS ``getAsset`` lookup."""

    async def fetch_market(self, address: Pubkey) -> MarketAccount:
        info = await self.get_account_info(address)
        if info is None:
            raise AccountNotFound("market", str(address))
        return MarketAccount.decode(address, info.data)

    async def fetch_config(self, address: Pubkey) -> ConfigAccount:
        info = await self.get_account_info(address)
        if info is None:
            raise AccountNotFound("config", str(address))
        return ConfigAccount.decode(address, info.data)

    async def close(self) -> None:
        return None


# =============================================================================
# solana-py implementation
# =============================================================================


_TRANSPORT_ERRORS = (httpx.HTTPError, SolanaRpcException, OSError, asyncio.TimeoutError)


class SolanaLedger(LedgerClient):
    """LedgerClient backed by a single RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        commitment: str = "confirmed",
        confirm_timeout_seconds: float = 30.0,
        poll_interval: float = 0.5,
    ):
        self.rpc_url = rpc_url
        self.commitment = Commitment(commitment)
        self.confirm_timeout_seconds = confirm_timeout_seconds
        self.poll_interval = poll_interval
        self._client = AsyncClient(rpc_url, commitment=self.commitment)

    async def close(self) -> None:
        await self._client.close()

    async def _build(self, tx: PreparedTransaction) -> VersionedTransaction:
        try:
            resp = await self._client.get_latest_blockhash(self.commitment)
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"get_latest_blockhash failed: {exc}") from exc
        message = MessageV0.try_compile(tx.fee_payer, tx.instructions, [], resp.value.blockhash)
        return VersionedTransaction(message, tx.signers)

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        signed = await self._build(tx)
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        try:
            resp = await self._client.send_raw_transaction(bytes(signed), opts=opts)
        except RPCException as exc:
            # Preflight simulation rejected the transaction
            raise OnChainRejection(tx.label, exc.args[0] if exc.args else exc) from exc
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"send_transaction failed for {tx.label}: {exc}") from exc
        signature = str(resp.value)
        logger.info(f"{tx.label} sent: {signature[:16]}...")
        return signature

    async def confirm_transaction(self, signature: str) -> Optional[Any]:
        """Poll signature status with backoff until confirmed or failed."""
        sig = Signature.from_string(signature)
        start = time.time()
        poll_count = 0
        while time.time() - start < self.confirm_timeout_seconds:
            try:
                resp = await self._client.get_signature_statuses([sig])
            except _TRANSPORT_ERRORS as exc:
                raise RemoteUnavailable(f"get_signature_statuses failed: {exc}") from exc
            value = resp.value[0] if resp.value else None
            if value is not None:
                if value.err is not None:
                    logger.warning(f"Transaction {signature[:16]}... failed: {value.err}")
                    return value.err
                if value.confirmation_status in (
                    TransactionConfirmationStatus.Confirmed,
                    TransactionConfirmationStatus.Finalized,
                ):
                    logger.info(f"Transaction {signature[:16]}... {value.confirmation_status}")
                    return None
            poll_count += 1
            await asyncio.sleep(min(self.poll_interval * (1.2 ** min(poll_count, 10)), 2.0))

        raise RemoteUnavailable(
            f"Transaction {signature[:16]}... not confirmed after {self.confirm_timeout_seconds}s",
            {"signature": signature},
        )

    async def simulate_transaction(self, tx: PreparedTransaction) -> SimulationResult:
        signed = await self._build(tx)
        try:
            resp = await self._client.simulate_transaction(signed, sig_verify=True, commitment=self.commitment)
        except RPCException as exc:
            return SimulationResult(err=exc.args[0] if exc.args else str(exc))
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"simulate_transaction failed for {tx.label}: {exc}") from exc
        value = resp.value
        return_data = None
        if value.return_data is not None:
            return_data = value.return_data.data
        return SimulationResult(
            err=value.err,
            logs=list(value.logs or []),
            return_data=return_data,
            units_consumed=value.units_consumed or 0,
        )

    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        try:
            resp = await self._client.get_account_info(address)
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"get_account_info failed for {address}: {exc}") from exc
        account = resp.value
        if account is None:
            return None
        return AccountInfo(data=bytes(account.data), owner=account.owner, lamports=account.lamports)

    async def get_token_account_balance(self, address: Pubkey) -> Optional[TokenAmount]:
        try:
            resp = await self._client.get_token_account_balance(address)
        except RPCException:
            # "could not find account"
            return None
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"get_token_account_balance failed for {address}: {exc}") from exc
        value = resp.value
        return TokenAmount(amount=int(value.amount), decimals=int(value.decimals))

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        try:
            resp = await self._client.get_minimum_balance_for_rent_exemption(size)
        except _TRANSPORT_ERRORS as exc:
            raise RemoteUnavailable(f"get_minimum_balance_for_rent_exemption failed: {exc}") from exc
        return int(resp.value)

    async def get_asset(self, asset_id: str) -> Dict[str, Any]:
        payload = {"jsonrpc": "2.0", "id": "1", "method": "getAsset", "params": {"id": asset_id}}
        timeout = aiohttp.ClientTimeout(total=20)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.rpc_url, json=payload) as resp:
                    if resp.status != 200:
                        raise RemoteUnavailable(f"getAsset HTTP {resp.status}", {"asset": asset_id})
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RemoteUnavailable(f"getAsset failed: {exc}", {"asset": asset_id}) from exc
