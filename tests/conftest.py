"""Shared fixtures for the exchange client tests.

``ScriptedExchange`` stands in for the remote service behind an
``httpx.MockTransport``: it answers with a fixed script of responses and
records every request it saw.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterator, List, Optional, Tuple

import httpx
import pytest

from btce_connector.core.config import ExchangeConfig
from btce_connector.core.logger import setup_logging
from btce_connector.exchange.async_client import AsyncExchangeClient
from btce_connector.exchange.client import ExchangeClient
from btce_connector.exchange.signing import NonceGenerator

API_KEY = "test-key"
API_SECRET = "test-secret"


class ScriptedExchange:
    """Answers requests from a script; the last entry repeats once reached.

    Script entries are ``(status, payload)``. A ``str`` payload is sent as-is
    (handy for HTML error pages), anything else as JSON. An exception
    instance is raised instead of answering.
    """

    def __init__(self, *script: Any):
        self.script: List[Any] = list(script)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(entry, Exception):
            raise entry
        status, payload = entry
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, content=json.dumps(payload).encode())

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_config(**overrides: Any) -> ExchangeConfig:
    values = {"api_key": API_KEY, "api_secret": API_SECRET}
    values.update(overrides)
    return ExchangeConfig(**values)


@pytest.fixture(autouse=True, scope="session")
def quiet_logging():
    """Route structlog through stdlib at WARNING so stdout stays clean."""
    setup_logging(log_level="WARNING")


@pytest.fixture
def sleeps(monkeypatch) -> List[float]:
    """Record blocking retry sleeps instead of waiting."""
    recorded: List[float] = []
    monkeypatch.setattr("btce_connector.exchange.client.time.sleep", recorded.append)
    return recorded


@pytest.fixture
def async_sleeps(monkeypatch) -> List[float]:
    recorded: List[float] = []

    async def _fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr("btce_connector.exchange.async_client.asyncio.sleep", _fake_sleep)
    return recorded


@pytest.fixture
def make_client() -> Iterator[Callable[..., Tuple[ExchangeClient, ScriptedExchange]]]:
    clients: List[ExchangeClient] = []

    def _make(*script: Any, nonce_generator: Optional[NonceGenerator] = None, **config: Any):
        exchange = ScriptedExchange(*script)
        client = ExchangeClient(
            make_config(**config),
            transport=httpx.MockTransport(exchange),
            nonce_generator=nonce_generator or NonceGenerator(),
        )
        clients.append(client)
        return client, exchange

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def make_async_client() -> Callable[..., Tuple[AsyncExchangeClient, ScriptedExchange]]:
    def _make(*script: Any, **config: Any):
        exchange = ScriptedExchange(*script)
        client = AsyncExchangeClient(
            make_config(**config),
            transport=httpx.MockTransport(exchange),
            nonce_generator=NonceGenerator(),
        )
        return client, exchange

    return _make
