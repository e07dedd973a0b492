"""
Token Mill orchestration core.

Turns high-level market operations (create, lock/free, vest, stake, swap,
quote) into ordered sequences of signed Solana transactions against the
Token Mill program. The HTTP shell lives in ``tokenmill_api``.
"""

from tokenmill.client import TokenMillClient
from tokenmill.config import Settings
from tokenmill.errors import (
    AccountNotFound,
    OnChainRejection,
    PreconditionUnmet,
    RemoteUnavailable,
    TokenMillError,
    ValidationError,
)
from tokenmill.signing import SigningContext

__all__ = [
    "TokenMillClient",
    "Settings",
    "SigningContext",
    "TokenMillError",
    "ValidationError",
    "AccountNotFound",
    "RemoteUnavailable",
    "OnChainRejection",
    "PreconditionUnmet",
]
