"""Client for the BTC-e style trade and public market-data APIs."""

from btce_connector.core.config import ExchangeConfig
from btce_connector.exchange.async_client import AsyncExchangeClient
from btce_connector.exchange.client import ExchangeClient
from btce_connector.exchange.exceptions import PairNotFoundError, RemoteError, ResponseDecodeError

__version__ = "1.0.0"

__all__ = [
    "AsyncExchangeClient",
    "ExchangeClient",
    "ExchangeConfig",
    "PairNotFoundError",
    "RemoteError",
    "ResponseDecodeError",
]
