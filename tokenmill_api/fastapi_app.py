"""
FastAPI application for the Token Mill orchestrator.

- Config, quote-token badge and market creation
- Market lifecycle (free-market)
- Vesting, release and staking
- Swaps and simulated quotes
- Token creation and DAS metadata lookup
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tokenmill.client import TokenMillClient
from tokenmill.config import Settings
from tokenmill.errors import TokenMillError
from tokenmill_api import __version__
from tokenmill_api.errors import HTTP_STATUS_CODES, error_from_exception, fastapi_error
from tokenmill_api.middleware import RequestTracingMiddleware, get_request_id
from tokenmill_api.routes import ALL_ROUTERS

logger = logging.getLogger("tokenmill.api")

NOISY_LOGGERS = ("solana", "solders", "httpx", "httpcore", "aiohttp")


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared client from the environment unless one was injected."""
    owns_client = False
    if getattr(app.state, "client", None) is None:
        try:
            settings = Settings.from_env()
        except ValueError as e:
            logger.error(f"Token Mill client not configured: {e}")
        else:
            app.state.client = TokenMillClient.from_settings(settings)
            owns_client = True
            logger.info(f"Token Mill client ready: {settings.summary()}")

    yield

    if owns_client:
        logger.info("Closing Token Mill client...")
        await app.state.client.close()


# =============================================================================
# Application Factory
# =============================================================================


def create_app(client: Optional[TokenMillClient] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        client: pre-built client (tests); otherwise built from the environment at startup
    """
    configure_logging()

    app = FastAPI(
        title="Token Mill API",
        description="Token Mill market orchestration on Solana",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )
    app.state.client = client

    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestTracingMiddleware)

    @app.exception_handler(TokenMillError)
    async def tokenmill_error_handler(request: Request, exc: TokenMillError):
        level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
        logger.log(level, f"[{get_request_id()}] {request.url.path}: {exc.code} {exc.message}")
        return error_from_exception(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return fastapi_error("VAL_001", "Request validation failed", {"errors": errors}, http_status=422)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error_code = HTTP_STATUS_CODES.get(exc.status_code, "SYS_003")
        return fastapi_error(error_code, str(exc.detail), http_status=exc.status_code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"[{get_request_id()}] Unhandled exception: {exc}")
        return fastapi_error("SYS_003", "Internal server error", http_status=500)

    for router in ALL_ROUTERS:
        app.include_router(router)

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(
        "tokenmill_api.fastapi_app:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "3000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()
