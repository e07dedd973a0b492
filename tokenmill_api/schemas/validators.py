"""Field validators shared by the request schemas."""
import re
from typing import Optional

from tokenmill.errors import ValidationError
from tokenmill.pda import parse_address

PATTERNS = {
    "address": re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"),  # base58 Solana address
}

# Metaplex metadata limits
CONSTRAINTS = {
    "name": 32,
    "symbol": 10,
    "uri": 200,
}

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_string(value: str, max_length: Optional[int] = None) -> str:
    """Strip whitespace, enforce length, reject control characters."""
    if not isinstance(value, str):
        raise ValueError("Value must be a string")
    value = value.strip()
    if not value:
        raise ValueError("Value cannot be empty")
    if max_length and len(value) > max_length:
        raise ValueError(f"String too long (max {max_length} characters)")
    if CONTROL_CHARS.search(value):
        raise ValueError("String contains control characters")
    return value


def validate_address(value: str) -> str:
    """Validate a base58 Solana address; returns it stripped."""
    if not isinstance(value, str):
        raise ValueError("Address must be a string")
    value = value.strip()
    if not PATTERNS["address"].match(value):
        raise ValueError("Invalid Solana address format")
    try:
        parse_address(value)
    except ValidationError:
        raise ValueError("Invalid Solana address") from None
    return value
