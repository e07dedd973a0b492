"""Liveness endpoint."""

import time
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel

from tokenmill_api import __version__
from tokenmill_api.errors import make_success_response

router = APIRouter(prefix="/api/health", tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str  # "healthy", "unconfigured"
    timestamp: float
    version: str
    program_id: str = ""
    rpc_url: str = ""


@router.get("")
async def health_check(request: Request) -> Dict[str, Any]:
    client = getattr(request.app.state, "client", None)
    if client is None:
        payload = HealthCheckResponse(status="unconfigured", timestamp=time.time(), version=__version__)
    else:
        payload = HealthCheckResponse(
            status="healthy",
            timestamp=time.time(),
            version=__version__,
            program_id=str(client.program_id),
            rpc_url=getattr(client.ledger, "rpc_url", ""),
        )
    return make_success_response(payload.model_dump())
