"""Adapter layer package for exchange integration boundaries."""

from .exchange_errors import (
	ExchangeAdapterConnectionError,
	ExchangeAdapterError,
	ExchangeAdapterTimeoutError,
	ExchangeCredentialsError,
	ExchangeOrderRejectedError,
	ExchangeRequestError,
	MarkPriceUnavailableError,
)
from .interfaces import ExchangeAdapterPort, MarkPriceSourcePort, OrderPlacementResult
from .kraken_futures import KrakenFuturesAdapter
from .simulated_exchange import SimulatedExchangeAdapter

__all__ = [
	"ExchangeAdapterConnectionError",
	"ExchangeAdapterError",
	"ExchangeAdapterPort",
	"ExchangeAdapterTimeoutError",
	"ExchangeCredentialsError",
	"ExchangeOrderRejectedError",
	"ExchangeRequestError",
	"KrakenFuturesAdapter",
	"MarkPriceSourcePort",
	"MarkPriceUnavailableError",
	"OrderPlacementResult",
	"SimulatedExchangeAdapter",
]
