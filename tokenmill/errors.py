"""
Error taxonomy for Token Mill orchestration.

Every failure that leaves the core is one of these, so the HTTP shell can map
it to a stable code and status without string matching.
"""

from typing import Any, Dict, Optional


class TokenMillError(Exception):
    """Base class for orchestrator errors."""

    code = "SYS_003"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TokenMillError):
    """Malformed or missing input, detected before any network call."""

    code = "VAL_001"
    http_status = 400


class AccountNotFound(ValidationError):
    """A referenced on-chain account (market, config) does not exist."""

    code = "VAL_404"
    http_status = 404

    def __init__(self, kind: str, address: str):
        super().__init__(f"{kind} account not found: {address}", {"kind": kind, "address": address})


class RemoteUnavailable(TokenMillError):
    """Transport failure reaching the RPC node or DAS endpoint."""

    code = "PROV_001"
    http_status = 502


class OnChainRejection(TokenMillError):
    """A transaction confirmed (or simulated) with a program-level error."""

    code = "CHAIN_001"
    http_status = 409

    def __init__(self, label: str, err: Any, signature: Optional[str] = None, logs: Optional[list] = None):
        details: Dict[str, Any] = {"transaction": label, "err": str(err)}
        if signature:
            details["signature"] = signature
        if logs:
            details["logs"] = list(logs)
        super().__init__(f"{label} failed: {err}", details)
        self.label = label
        self.err = err
        self.signature = signature


class PreconditionUnmet(TokenMillError):
    """A domain guard failed before a transaction was built."""

    code = "PRECONDITION_UNMET"
    http_status = 412

    def __init__(self, message: str, observed: Any = None, required: Any = None):
        details: Dict[str, Any] = {}
        if observed is not None:
            details["observed"] = str(observed)
        if required is not None:
            details["required"] = str(required)
        super().__init__(message, details)
        self.observed = observed
        self.required = required
