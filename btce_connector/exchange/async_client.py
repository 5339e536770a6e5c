"""
Async Exchange Client - same wire protocol and retry policy as
``ExchangeClient``, for use inside an event loop.

The retry interval is awaited with ``asyncio.sleep`` so other tasks keep
running while a call backs off.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import httpx

from btce_connector.core.logger import get_logger, log_performance
from btce_connector.exchange.client import _RETRY, BaseExchangeClient

logger = get_logger("exchange")


class AsyncExchangeClient(BaseExchangeClient):
    """
    Usage::

        async with AsyncExchangeClient(config.exchange) as client:
            funds = (await client.get_info())["funds"]
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client: httpx.AsyncClient | None = None

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(**self._client_kwargs())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AsyncExchangeClient:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_pairs_info(self) -> Dict[str, Any]:
        return self._pairs_from(await self._send_open_api_request(self.config.info_path))

    async def get_depth(self, pair: str, limit: Optional[int] = None) -> Any:
        path, params = self._depth_request(pair, limit)
        return self._book_from(await self._send_open_api_request(path, params), pair)

    async def _send_trade_api_request(self, params: Mapping[str, Any]) -> Any:
        if self._client is None:
            await self.initialize()

        attempt = 0
        while True:
            envelope = self._sign(params)
            try:
                with log_performance(
                    logger, "Trade API request",
                    method=envelope.method, attempt=attempt + 1,
                ):
                    response = await self._client.post(
                        self.config.trade_path,
                        content=envelope.body,
                        headers=envelope.headers,
                    )
            except httpx.TransportError as e:
                raise self._transport_failure(e, envelope.method) from e

            result = self._handle_trade_response(response, envelope.method, attempt)
            if result is not _RETRY:
                return result
            self._log_retry("Trade API", envelope.method, response, attempt)
            attempt += 1
            await asyncio.sleep(self.retry_interval)

    async def _send_open_api_request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self._client is None:
            await self.initialize()

        attempt = 0
        while True:
            try:
                with log_performance(logger, "Public API request", path=path, attempt=attempt + 1):
                    response = await self._client.get(path, params=params)
            except httpx.TransportError as e:
                raise self._transport_failure(e, path) from e

            result = self._handle_open_response(response, path, attempt)
            if result is not _RETRY:
                return result
            self._log_retry("Public API", path, response, attempt)
            attempt += 1
            await asyncio.sleep(self.retry_interval)
