"""Swap and quote routes."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from tokenmill.client import TokenMillClient
from tokenmill_api.dependencies import get_client
from tokenmill_api.errors import make_success_response
from tokenmill_api.schemas import QuoteSwapRequest, SwapRequest

logger = logging.getLogger("tokenmill.api.swap")

router = APIRouter(prefix="/api", tags=["Swap"])


@router.post("/swap")
async def swap(body: SwapRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.swap(
        market=body.market,
        action=body.action.value,
        trade_type=body.tradeType.value,
        amount=body.amount,
        other_amount_threshold=body.otherAmountThreshold,
    )
    logger.info(f"Swap {body.action.value}/{body.tradeType.value} on {body.market}: {result['signature'][:16]}...")
    return make_success_response(result)


@router.post("/quote-swap")
async def quote_swap(body: QuoteSwapRequest, client: TokenMillClient = Depends(get_client)) -> Dict[str, Any]:
    result = await client.quote_swap(
        market=body.market,
        action=body.action.value,
        trade_type=body.tradeType.value,
        amount=body.amount,
        other_amount_threshold=body.otherAmountThreshold,
    )
    return make_success_response(result)
