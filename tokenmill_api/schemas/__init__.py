"""API request schemas and validation helpers."""
from tokenmill_api.schemas.requests import (
    CreateConfigRequest,
    CreateMarketRequest,
    CreateTokenRequest,
    CreateVestingRequest,
    FreeMarketRequest,
    QuoteSwapRequest,
    QuoteTokenBadgeRequest,
    ReleaseVestingRequest,
    StakeRequest,
    SwapRequest,
)
from tokenmill_api.schemas.validators import sanitize_string, validate_address

__all__ = [
    "CreateConfigRequest",
    "CreateMarketRequest",
    "CreateTokenRequest",
    "CreateVestingRequest",
    "FreeMarketRequest",
    "QuoteSwapRequest",
    "QuoteTokenBadgeRequest",
    "ReleaseVestingRequest",
    "StakeRequest",
    "SwapRequest",
    "sanitize_string",
    "validate_address",
]
