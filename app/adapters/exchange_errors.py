"""Project-native typed exceptions for exchange adapter failures."""

from __future__ import annotations


class ExchangeAdapterError(Exception):
    """Base exception for adapter-level exchange failures.

    Attributes:
        error_code: Optional upstream error label.
    """

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


class ExchangeAdapterConnectionError(ExchangeAdapterError, ConnectionError):
    """Transport-level connectivity failure or non-success HTTP status."""


class ExchangeAdapterTimeoutError(ExchangeAdapterError, TimeoutError):
    """Transport timeout while waiting for an exchange response."""


class ExchangeRequestError(ExchangeAdapterError, ValueError):
    """Exchange rejected the request or returned a response that breaks the contract."""


class ExchangeCredentialsError(ExchangeRequestError):
    """Private endpoint called without API credentials."""


class ExchangeOrderRejectedError(ExchangeRequestError):
    """Exchange accepted the request but refused to place the order.

    `error_code` carries the upstream send status (for example
    `insufficientAvailableFunds`).
    """


class MarkPriceUnavailableError(ExchangeAdapterError, RuntimeError):
    """No mark price is known for the requested symbol."""
