"""Decode swap quotes from a simulation's program return data."""

from __future__ import annotations

import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

QUOTE_DATA_LENGTH = 16


@dataclass(frozen=True)
class SwapQuote:
    input_amount: int
    output_amount: int

    @property
    def is_empty(self) -> bool:
        return self.input_amount == 0 and self.output_amount == 0

    def to_dict(self) -> dict:
        return {"inputAmount": self.input_amount, "outputAmount": self.output_amount}


EMPTY_QUOTE = SwapQuote(0, 0)


class QuoteDecoder:
    """
    Turns return data into a SwapQuote.

    Layout: bytes [0, 8) input amount, [8, 16) output amount, both u64 LE.
    Anything missing or short yields the (0, 0) sentinel and a warning.
    """

    def decode(self, return_data: Any) -> SwapQuote:
        raw = self._payload(return_data)
        if raw is None:
            logger.warning("Swap simulation returned no data; quoting 0/0")
            return EMPTY_QUOTE
        if len(raw) < QUOTE_DATA_LENGTH:
            logger.warning(f"Swap return data too short ({len(raw)} bytes); quoting 0/0")
            return EMPTY_QUOTE
        input_amount, output_amount = struct.unpack_from("<QQ", raw, 0)
        return SwapQuote(input_amount, output_amount)

    @staticmethod
    def _payload(return_data: Any) -> Optional[bytes]:
        if return_data is None:
            return None
        if isinstance(return_data, (bytes, bytearray)):
            return bytes(return_data)
        if isinstance(return_data, (list, tuple)):
            # RPC shape: [base64, "base64"]
            if not return_data:
                return None
            return_data = return_data[0]
        if isinstance(return_data, (bytes, bytearray)):
            return bytes(return_data)
        if not isinstance(return_data, str) or not return_data:
            return None
        try:
            return base64.b64decode(return_data, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Swap return data is not valid base64")
            return None


def decode_quote(return_data: Any) -> SwapQuote:
    return QuoteDecoder().decode(return_data)
