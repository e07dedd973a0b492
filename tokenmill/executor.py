"""
Transaction executors over a LedgerClient.

Builders produce a PreparedTransaction; these functions are the only place
that submits or simulates one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from tokenmill.errors import OnChainRejection, PreconditionUnmet
from tokenmill.ledger import LedgerClient, PreparedTransaction, SimulationResult

logger = logging.getLogger(__name__)

# Program/runtime messages that mean "the account is already there"
_ALREADY_EXISTS_MARKERS = (
    "already in use",
    "already exists",
    "accountalreadyinitialized",
    "already initialized",
)


def is_already_exists_error(err: Any, logs: Optional[list] = None) -> bool:
    """True when a rejection payload (or its logs) reports an existing account."""
    haystack = str(err).lower()
    if logs:
        haystack += " " + " ".join(str(line) for line in logs).lower()
    return any(marker in haystack for marker in _ALREADY_EXISTS_MARKERS)


async def submit_and_confirm(ledger: LedgerClient, tx: PreparedTransaction) -> str:
    """Send, wait for a terminal status, raise OnChainRejection on error."""
    signature = await ledger.send_transaction(tx)
    err = await ledger.confirm_transaction(signature)
    if err is not None:
        logger.error(f"{tx.label} rejected ({signature[:16]}...): {err}")
        raise OnChainRejection(tx.label, err, signature=signature)
    logger.info(f"{tx.label} confirmed: {signature[:16]}...")
    return signature


async def simulate(ledger: LedgerClient, tx: PreparedTransaction) -> SimulationResult:
    result = await ledger.simulate_transaction(tx)
    if result.err is not None:
        logger.debug(f"{tx.label} simulation error: {result.err}")
    return result


async def wait_until_ready(
    check: Callable[[], Awaitable[bool]],
    *,
    timeout_seconds: float,
    base_delay: float = 1.0,
    max_delay: float = 15.0,
    description: str = "condition",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """
    Poll ``check`` with exponential backoff until it returns True.

    Returns the number of attempts made. Raises PreconditionUnmet when the
    timeout elapses first.
    """
    start = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        if await check():
            return attempt
        elapsed = time.monotonic() - start
        if elapsed >= timeout_seconds:
            raise PreconditionUnmet(
                f"{description} not met within {timeout_seconds}s",
                observed=f"not ready after {attempt} attempts",
                required=description,
            )
        delay = min(base_delay * (2 ** (attempt - 1)), max_delay, max(timeout_seconds - elapsed, 0))
        logger.debug(f"{description} not ready (attempt {attempt}), retrying in {delay:.1f}s")
        await sleep(delay)
