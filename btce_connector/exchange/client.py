"""
Exchange Client - Signed trade API and public market-data API over HTTP.

The trade API takes form-encoded POSTs signed with HMAC-SHA512 and answers
``{"success": 1, "return": ...}`` or ``{"success": 0, "error": "..."}``.
The public API is plain GETs answering bare JSON.

Both paths share one delivery policy:
- HTTP 200 with a well-formed answer -> return the payload
- HTTP 5xx -> fixed-interval retry, bounded by ``max_retries``
- anything else -> RemoteError carrying the exchange's message

Trade retries are re-signed with a fresh nonce each attempt; replaying the
first envelope would be rejected as a reused nonce.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote

import httpx

from btce_connector.core.config import ExchangeConfig
from btce_connector.core.logger import get_logger, log_performance
from btce_connector.exchange import methods
from btce_connector.exchange.exceptions import (
    PairNotFoundError,
    RemoteError,
    ResponseDecodeError,
    UNKNOWN_ERROR,
)
from btce_connector.exchange.signing import NonceGenerator, SignedEnvelope, build_signed_envelope

logger = get_logger("exchange")

# Marks a response that should be re-sent after the retry interval.
_RETRY = object()
_UNDECODABLE = object()


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return _UNDECODABLE


def _error_message(data: Any) -> str:
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return UNKNOWN_ERROR


def _is_server_error(status_code: int) -> bool:
    return 500 <= status_code < 600


class BaseExchangeClient:
    """
    Transport-agnostic part of the client: credentials, payload building,
    signing and response classification.

    Trade methods return whatever the concrete ``_send_trade_api_request``
    returns, i.e. the decoded payload for ``ExchangeClient`` and an awaitable
    for ``AsyncExchangeClient``.
    """

    def __init__(
        self,
        config: Union[ExchangeConfig, Mapping[str, Any], None] = None,
        *,
        proxy: Optional[str] = None,
        transport: Optional[httpx.BaseTransport | httpx.AsyncBaseTransport] = None,
        nonce_generator: Optional[NonceGenerator] = None,
    ):
        if config is None:
            config = ExchangeConfig()
        elif not isinstance(config, ExchangeConfig):
            config = ExchangeConfig.model_validate(dict(config))
        if proxy is not None:
            config = config.model_copy(update={"proxy": proxy})
        self.config = config
        self._transport = transport
        self._nonces = nonce_generator

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    @property
    def retry_interval(self) -> float:
        return self.config.retry_interval

    def _client_kwargs(self) -> Dict[str, Any]:
        # httpx never raises on 4xx/5xx by itself; classification happens here.
        # Proxy comes from config only, never from HTTP(S)_PROXY. An injected
        # transport replaces proxy routing, so the proxy is not passed with it.
        return {
            "base_url": self.config.base_url + "/",
            "timeout": self.config.timeout,
            "proxy": self.config.proxy if self._transport is None else None,
            "transport": self._transport,
            "trust_env": False,
        }

    # ------------------------------------------------------------------
    # Trade API
    # ------------------------------------------------------------------

    def redeem_coupon(self, code: str):
        return self._send_trade_api_request(methods.redeem_coupon(code))

    def get_info(self):
        return self._send_trade_api_request(methods.get_info())

    def trade(self, pair: str, type: str, rate: str, amount: str):
        """Place an order. ``rate`` and ``amount`` must be decimal strings."""
        return self._send_trade_api_request(methods.trade(pair, type, rate, amount))

    def cancel_order(self, order_id: str):
        return self._send_trade_api_request(methods.cancel_order(order_id))

    def get_trade_history(self, filters: Optional[Mapping[str, Any]] = None):
        return self._send_trade_api_request(methods.trade_history(filters))

    def get_trans_history(self, filters: Optional[Mapping[str, Any]] = None):
        return self._send_trade_api_request(methods.trans_history(filters))

    def _send_trade_api_request(self, params: Mapping[str, Any]):
        raise NotImplementedError

    def _sign(self, params: Mapping[str, Any]) -> SignedEnvelope:
        return build_signed_envelope(
            params,
            self.api_key,
            self.config.api_secret,
            self._nonces,
        )

    # ------------------------------------------------------------------
    # Public API helpers
    # ------------------------------------------------------------------

    def _depth_request(self, pair: str, limit: Optional[int]) -> tuple[str, Dict[str, int]]:
        if limit is None:
            limit = self.config.default_depth_limit
        path = self.config.depth_path.format(pair=quote(str(pair), safe=""))
        return path, {"limit": int(limit)}

    @staticmethod
    def _pairs_from(result: Any) -> Dict[str, Any]:
        pairs = result.get("pairs") if isinstance(result, dict) else None
        return pairs if pairs is not None else {}

    @staticmethod
    def _book_from(result: Any, pair: str) -> Any:
        # Answers are keyed by pair name; the caller already knows which one.
        if isinstance(result, dict):
            for book in result.values():
                return book
        elif isinstance(result, list) and result:
            return result[0]
        raise PairNotFoundError(pair)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        return _is_server_error(status_code) and attempt < self.max_retries

    def _handle_trade_response(self, response: httpx.Response, method: str, attempt: int) -> Any:
        status = response.status_code
        data = _decode_json(response)

        if status == 200:
            if isinstance(data, dict) and data.get("success") == 1:
                return data.get("return")
            if not isinstance(data, dict):
                raise ResponseDecodeError(
                    "malformed trade API response", status_code=status, method=method,
                )
        elif self._should_retry(status, attempt):
            return _RETRY

        message = _error_message(data)
        logger.error(
            "Trade API request rejected",
            method=method,
            status_code=status,
            attempt=attempt + 1,
            error=message,
        )
        raise RemoteError(message, status_code=status, method=method)

    def _handle_open_response(self, response: httpx.Response, path: str, attempt: int) -> Any:
        status = response.status_code
        data = _decode_json(response)

        if status == 200:
            if isinstance(data, (dict, list)):
                return data
            raise ResponseDecodeError(
                "malformed public API response", status_code=status, method=path,
            )
        if self._should_retry(status, attempt):
            return _RETRY

        message = _error_message(data)
        logger.error(
            "Public API request failed",
            path=path,
            status_code=status,
            attempt=attempt + 1,
            error=message,
        )
        raise RemoteError(message, status_code=status, method=path)

    def _log_retry(self, kind: str, label: str, response: httpx.Response, attempt: int) -> None:
        logger.warning(
            f"{kind} server error, retrying",
            method=label,
            status_code=response.status_code,
            attempt=attempt + 1,
            max_retries=self.max_retries,
            retry_in_s=self.retry_interval,
        )

    @staticmethod
    def _transport_failure(exc: httpx.TransportError, label: str) -> RemoteError:
        return RemoteError(f"{type(exc).__name__}: {exc}", method=label)


class ExchangeClient(BaseExchangeClient):
    """
    Blocking client. Each call holds the calling thread until the exchange
    answers; retries sleep in place.

    Usage::

        with ExchangeClient(config.exchange) as client:
            funds = client.get_info()["funds"]
            book = client.get_depth("btc_usd", limit=10)
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client: httpx.Client | None = None

    def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.Client(**self._client_kwargs())

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> ExchangeClient:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_pairs_info(self) -> Dict[str, Any]:
        return self._pairs_from(self._send_open_api_request(self.config.info_path))

    def get_depth(self, pair: str, limit: Optional[int] = None) -> Any:
        """Order book for ``pair``: the inner ``{"asks": ..., "bids": ...}``."""
        path, params = self._depth_request(pair, limit)
        return self._book_from(self._send_open_api_request(path, params), pair)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _send_trade_api_request(self, params: Mapping[str, Any]) -> Any:
        if self._client is None:
            self.initialize()

        attempt = 0
        while True:
            envelope = self._sign(params)
            try:
                with log_performance(
                    logger, "Trade API request",
                    method=envelope.method, attempt=attempt + 1,
                ):
                    response = self._client.post(
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
            time.sleep(self.retry_interval)

    def _send_open_api_request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self._client is None:
            self.initialize()

        attempt = 0
        while True:
            try:
                with log_performance(logger, "Public API request", path=path, attempt=attempt + 1):
                    response = self._client.get(path, params=params)
            except httpx.TransportError as e:
                raise self._transport_failure(e, path) from e

            result = self._handle_open_response(response, path, attempt)
            if result is not _RETRY:
                return result
            self._log_retry("Public API", path, response, attempt)
            attempt += 1
            time.sleep(self.retry_interval)
