"""Token creation and metadata routes."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from tokenmill.client import TokenMillClient
from tokenmill_api.dependencies import get_client
from tokenmill_api.errors import make_success_response
from tokenmill_api.schemas import CreateTokenRequest

logger = logging.getLogger("tokenmill.api.tokens")

router = APIRouter(prefix="/api", tags=["Tokens"])


@router.post("/tokens")
async def create_token(
    body: Optional[CreateTokenRequest] = None,
    client: TokenMillClient = Depends(get_client),
) -> Dict[str, Any]:
    body = body or CreateTokenRequest()
    result = await client.create_token(decimals=body.decimals, supply=body.supply)
    return make_success_response(result)


@router.get("/token-metadata")
async def token_metadata(
    mint: str = Query(..., min_length=1, description="Mint (asset) address"),
    client: TokenMillClient = Depends(get_client),
) -> Dict[str, Any]:
    asset = await client.get_token_metadata(mint)
    return make_success_response(asset)
