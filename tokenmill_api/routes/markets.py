"""
Config and market routes.

- POST /api/config             create a Token Mill config account
- POST /api/quote-token-badge  enable a quote asset (idempotent)
- POST /api/markets            create, price and lock a market
- POST /api/free-market        LOCKED -> FREE once the quote threshold is met
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from tokenmill.client import TokenMillClient
from tokenmill_api.dependencies import get_client
from tokenmill_api.errors import make_success_response
from tokenmill_api.schemas import (
    CreateConfigRequest,
    CreateMarketRequest,
    FreeMarketRequest,
    QuoteTokenBadgeRequest,
)

logger = logging.getLogger("tokenmill.api.markets")

router = APIRouter(prefix="/api", tags=["Markets"])


@router.post("/config")
async def create_config(body: CreateConfigRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.create_config(
        authority=body.authority,
        protocol_fee_recipient=body.protocolFeeRecipient,
        protocol_fee_share=body.protocolFeeShare,
        referral_fee_share=body.referralFeeShare,
    )
    return make_success_response(result)


@router.post("/quote-token-badge")
async def create_quote_token_badge(
    body: QuoteTokenBadgeRequest,
    client: TokenMillClient = Depends(get_client),
) -> Dict[str, Any]:
    result = await client.create_quote_token_badge(body.quoteTokenMint)
    return make_success_response(result)


@router.post("/markets")
async def create_market(body: CreateMarketRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    logger.info(f"Creating market {body.symbol} (supply {body.totalSupply})")
    result = await client.create_market(
        name=body.name,
        symbol=body.symbol,
        uri=body.uri,
        total_supply=body.totalSupply,
        creator_fee_share=body.creatorFeeShare,
        staking_fee_share=body.stakingFeeShare,
    )
    return make_success_response(result)


@router.post("/free-market")
async def free_market(body: FreeMarketRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.free_market(body.market)
    return make_success_response(result)
