"""Request bodies for every Token Mill route. Unknown fields are rejected."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tokenmill.client import MAX_FEE_SHARE_BPS
from tokenmill.instructions import I64_MAX, U64_MAX, SwapAction, TradeType
from tokenmill_api.schemas.validators import CONSTRAINTS, sanitize_string, validate_address


class StrictRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# =============================================================================
# Config / markets
# =============================================================================


class CreateConfigRequest(StrictRequest):
    authority: str = Field(..., description="Config authority address")
    protocolFeeRecipient: str = Field(..., description="Receives protocol fees")
    protocolFeeShare: int = Field(..., ge=0, le=MAX_FEE_SHARE_BPS, description="Basis points")
    referralFeeShare: int = Field(..., ge=0, le=MAX_FEE_SHARE_BPS, description="Basis points")

    @field_validator("authority", "protocolFeeRecipient")
    @classmethod
    def check_addresses(cls, v):
        return validate_address(v)


class QuoteTokenBadgeRequest(StrictRequest):
    quoteTokenMint: Optional[str] = Field(None, description="Defaults to wSOL")

    @field_validator("quoteTokenMint")
    @classmethod
    def check_mint(cls, v):
        return validate_address(v) if v is not None else v


class CreateMarketRequest(StrictRequest):
    name: str
    symbol: str
    uri: str
    totalSupply: int = Field(..., gt=0, description="Whole tokens; scaled by 10^6 on-chain")
    creatorFeeShare: int = Field(..., ge=0, le=MAX_FEE_SHARE_BPS)
    stakingFeeShare: int = Field(..., ge=0, le=MAX_FEE_SHARE_BPS)

    @field_validator("name", "symbol", "uri")
    @classmethod
    def check_metadata(cls, v, info):
        return sanitize_string(v, max_length=CONSTRAINTS[info.field_name])

    @model_validator(mode="after")
    def check_fee_shares(self):
        if self.creatorFeeShare + self.stakingFeeShare > MAX_FEE_SHARE_BPS:
            raise ValueError("creatorFeeShare + stakingFeeShare cannot exceed 10000")
        return self


class FreeMarketRequest(StrictRequest):
    market: str

    @field_validator("market")
    @classmethod
    def check_market(cls, v):
        return validate_address(v)


class CreateTokenRequest(StrictRequest):
    decimals: int = Field(6, ge=0, le=9)
    supply: int = Field(100_000_000, gt=0, le=U64_MAX)


# =============================================================================
# Vesting / staking
# =============================================================================


class CreateVestingRequest(StrictRequest):
    marketAddress: str
    recipient: str
    amount: int = Field(..., gt=0, le=U64_MAX)
    duration: int = Field(..., gt=0, le=I64_MAX, description="Seconds")
    cliffDuration: Optional[int] = Field(None, ge=0, le=I64_MAX, description="Seconds")

    @field_validator("marketAddress", "recipient")
    @classmethod
    def check_addresses(cls, v):
        return validate_address(v)


class ReleaseVestingRequest(StrictRequest):
    stakingAddress: str
    stakePositionAddress: str
    vestingPlanAddress: str
    baseTokenMint: str

    @field_validator("stakingAddress", "stakePositionAddress", "vestingPlanAddress", "baseTokenMint")
    @classmethod
    def check_addresses(cls, v):
        return validate_address(v)


class StakeRequest(StrictRequest):
    marketAddress: str
    amount: int = Field(..., gt=0, le=U64_MAX)
    lockupPeriod: Optional[int] = Field(None, ge=0, description="Seconds; informational")

    @field_validator("marketAddress")
    @classmethod
    def check_market(cls, v):
        return validate_address(v)


# =============================================================================
# Swaps
# =============================================================================


class SwapRequest(StrictRequest):
    market: str
    action: SwapAction
    tradeType: TradeType
    amount: int = Field(..., gt=0, le=U64_MAX)
    otherAmountThreshold: Optional[int] = Field(None, ge=0, le=U64_MAX, description="Defaults to 1% slippage")

    @field_validator("market")
    @classmethod
    def check_market(cls, v):
        return validate_address(v)


class QuoteSwapRequest(SwapRequest):
    otherAmountThreshold: int = Field(..., ge=0, le=U64_MAX)
