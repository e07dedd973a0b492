"""
Standardized response envelopes for the Token Mill API.

Every route returns ``{"success": true, "data": {...}}``; every failure
returns ``{"success": false, "error": {"code", "message", "details"?}}``.
"""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from tokenmill.errors import TokenMillError


ERROR_CODES = {
    # Validation errors
    "VAL_001": "Invalid request body",
    "VAL_404": "Account not found",

    # Ledger errors
    "CHAIN_001": "Transaction rejected on-chain",
    "PRECONDITION_UNMET": "Precondition not met",

    # Provider errors
    "PROV_001": "RPC endpoint unavailable",

    # System errors
    "SYS_002": "Service unavailable",
    "SYS_003": "Internal server error",
    "SYS_004": "Configuration error",
}

# Starlette HTTP status -> error code for errors raised outside the core
HTTP_STATUS_CODES = {
    400: "VAL_001",
    404: "VAL_404",
    405: "VAL_001",
    422: "VAL_001",
    500: "SYS_003",
    503: "SYS_002",
}


def make_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create a standardized error response dict.

    Args:
        error_code: Error code from ERROR_CODES
        message: Custom error message (uses default if not provided)
        details: Additional error details

    Returns:
        Standardized error response dict
    """
    response: Dict[str, Any] = {
        "success": False,
        "error": {
            "code": error_code,
            "message": message or ERROR_CODES.get(error_code, "Unknown error"),
        },
    }
    if details:
        response["error"]["details"] = details
    return response


def make_success_response(data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {"success": True}
    if data is not None:
        response["data"] = data
    return response


def fastapi_error(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    http_status: int = 400,
) -> JSONResponse:
    return JSONResponse(content=make_error_response(error_code, message, details), status_code=http_status)


def error_from_exception(exc: TokenMillError) -> JSONResponse:
    """Map a core error onto its code and HTTP status."""
    return fastapi_error(exc.code, exc.message, exc.details or None, exc.http_status)
