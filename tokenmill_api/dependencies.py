"""FastAPI dependencies."""
from fastapi import Request

from tokenmill.client import TokenMillClient
from tokenmill.errors import TokenMillError


class ClientUnavailable(TokenMillError):
    code = "SYS_004"
    http_status = 503


def get_client(request: Request) -> TokenMillClient:
    """The TokenMillClient built during application startup."""
    client = getattr(request.app.state, "client", None)
    if client is None:
        raise ClientUnavailable("Token Mill client is not configured")
    return client
