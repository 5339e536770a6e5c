"""Errors raised by the exchange clients.

Callers only need ``RemoteError``: every failure that survives the retry
policy surfaces as one, with the exchange's own message when it sent one.
"""

from __future__ import annotations

from typing import Optional

UNKNOWN_ERROR = "unknown"


class RemoteError(Exception):
    """Non-recoverable exchange or transport failure."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
    ):
        self.message = message or UNKNOWN_ERROR
        self.status_code = status_code
        self.method = method
        super().__init__(self.message)


class ResponseDecodeError(RemoteError):
    """HTTP 200 whose body is not JSON or not shaped like an API response."""


class PairNotFoundError(KeyError):
    """Depth answer that holds no order book for the requested pair."""

    def __init__(self, pair: str):
        self.pair = pair
        super().__init__(f"no depth returned for {pair}")
