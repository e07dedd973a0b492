"""Vesting and staking routes."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from tokenmill.client import TokenMillClient
from tokenmill.errors import ValidationError
from tokenmill_api.dependencies import get_client
from tokenmill_api.errors import make_success_response
from tokenmill_api.schemas import CreateVestingRequest, ReleaseVestingRequest, StakeRequest
from tokenmill_api.schemas.validators import validate_address

logger = logging.getLogger("tokenmill.api.vesting")

router = APIRouter(prefix="/api", tags=["Vesting"])


@router.post("/vesting")
async def create_vesting(body: CreateVestingRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.create_vesting(
        market=body.marketAddress,
        recipient=body.recipient,
        amount=body.amount,
        duration=body.duration,
        cliff_duration=body.cliffDuration,
    )
    return make_success_response(result)


@router.post("/vesting/{marketAddress}/claim")
async def release_vesting(
    marketAddress: str,
    body: ReleaseVestingRequest,
    client: TokenMillClient = Depends(get_client),
) -> Dict[str, Any]:
    try:
        market = validate_address(marketAddress)
    except ValueError as exc:
        raise ValidationError(str(exc), {"field": "marketAddress"}) from None
    result = await client.release_vesting(
        market=market,
        staking=body.stakingAddress,
        stake_position=body.stakePositionAddress,
        vesting_plan=body.vestingPlanAddress,
        base_token_mint=body.baseTokenMint,
    )
    return make_success_response(result)


@router.post("/stake")
async def stake(body: StakeRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.stake(
        market=body.marketAddress,
        amount=body.amount,
        lockup_period=body.lockupPeriod,
    )
    return make_success_response(result)
