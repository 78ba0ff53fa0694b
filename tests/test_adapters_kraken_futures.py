"""Tests for Kraken Futures adapter signing, parsing and error mapping.

HTTP calls are served by an in-process fake client injected in place of
`httpx.Client`, so no network access is required.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from app.adapters import (
    ExchangeAdapterConnectionError,
    ExchangeAdapterTimeoutError,
    ExchangeCredentialsError,
    ExchangeOrderRejectedError,
    ExchangeRequestError,
    KrakenFuturesAdapter,
    MarkPriceUnavailableError,
)
from app.adapters import kraken_futures
from app.ledger import MarketTradeRequest

_API_SECRET = base64.b64encode(b"kraken-test-secret").decode("ascii")
_BASE_URL = "https://demo-futures.kraken.com"


class _FakeHttpClient:
    """Fake `httpx.Client` that records calls and replays queued responses."""

    def __init__(self, responses: list[object]):
        """Initialize fake client.

        Args:
            responses: Queued `httpx.Response` objects or exceptions to raise.

        Returns:
            None: Initializer does not return values.

        Raises:
            RuntimeError: This fake does not raise runtime errors.
        """

        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def get(self, url: str, params=None, headers=None) -> httpx.Response:
        """Record GET call and return the next queued response.

        Args:
            url: Request URL.
            params: Query parameters.
            headers: Request headers.

        Returns:
            httpx.Response: Queued response.

        Raises:
            httpx.HTTPError: Raised when an exception is queued.
        """

        self.calls.append({"method": "GET", "url": url, "params": params, "headers": headers})
        return self._next_response("GET", url)

    def post(self, url: str, content=None, headers=None) -> httpx.Response:
        """Record POST call and return the next queued response.

        Args:
            url: Request URL.
            content: Form-encoded body.
            headers: Request headers.

        Returns:
            httpx.Response: Queued response.

        Raises:
            httpx.HTTPError: Raised when an exception is queued.
        """

        self.calls.append({"method": "POST", "url": url, "content": content, "headers": headers})
        return self._next_response("POST", url)

    def _next_response(self, method: str, url: str) -> httpx.Response:
        queued = self._responses.pop(0)
        if isinstance(queued, Exception):
            raise queued
        queued.request = httpx.Request(method, url)
        return queued


def _install_fake_client(monkeypatch: pytest.MonkeyPatch, responses: list[object]) -> _FakeHttpClient:
    """Replace `httpx.Client` construction inside the adapter module.

    Args:
        monkeypatch: Pytest monkeypatch fixture.
        responses: Queued responses.

    Returns:
        _FakeHttpClient: Installed fake client.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    fake_client = _FakeHttpClient(responses)
    monkeypatch.setattr(kraken_futures.httpx, "Client", lambda timeout: fake_client)
    return fake_client


def _build_adapter(with_credentials: bool = True) -> KrakenFuturesAdapter:
    return KrakenFuturesAdapter(
        api_key="public-key" if with_credentials else None,
        api_secret=_API_SECRET if with_credentials else None,
        base_url=_BASE_URL,
        epoch_millis_provider=lambda: 1700000000000,
    )


def test_kraken_adapter_reads_mark_price_from_public_tickers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Read mark price for the tracked symbol without signing.

    Returns:
        None: Assertions validate parsed price and unsigned request.

    Raises:
        AssertionError: Raised when mark price or headers are incorrect.
    """

    fake_client = _install_fake_client(
        monkeypatch,
        [
            httpx.Response(
                200,
                json={
                    "result": "success",
                    "tickers": [
                        {"symbol": "PF_ETHUSD", "markPrice": 1800.1},
                        {"symbol": "PF_XBTUSD", "markPrice": "27950.5"},
                    ],
                },
            )
        ],
    )

    mark_price = _build_adapter(with_credentials=False).adapter_get_mark_price("PF_XBTUSD")

    assert mark_price == Decimal("27950.5")
    assert fake_client.calls[0]["url"] == f"{_BASE_URL}/derivatives/api/v3/tickers"
    assert "Authent" not in fake_client.calls[0]["headers"]


def test_kraken_adapter_raises_when_symbol_is_not_quoted(monkeypatch: pytest.MonkeyPatch) -> None:
    """Raise mark-price unavailable error for unknown symbols.

    Returns:
        None: Assertions validate error type.

    Raises:
        AssertionError: Raised when missing symbol is tolerated.
    """

    _install_fake_client(monkeypatch, [httpx.Response(200, json={"result": "success", "tickers": []})])

    with pytest.raises(MarkPriceUnavailableError):
        _build_adapter().adapter_get_mark_price("PF_XBTUSD")


def test_kraken_adapter_signs_private_request(monkeypatch: pytest.MonkeyPatch) -> None:
    """Send APIKey, Nonce and Authent headers for sendorder.

    Returns:
        None: Assertions validate signature, body and parsed execution price.

    Raises:
        AssertionError: Raised when signature or body is incorrect.
    """

    fake_client = _install_fake_client(
        monkeypatch,
        [
            httpx.Response(
                200,
                json={
                    "result": "success",
                    "sendStatus": {
                        "order_id": "c18f0c17-9971-40e6-8e5b-10df05d422f0",
                        "status": "placed",
                        "orderEvents": [{"type": "EXECUTION", "price": 27960.0, "amount": 0.001}],
                    },
                },
            )
        ],
    )
    adapter = _build_adapter()

    placement = adapter.adapter_place_order(
        MarketTradeRequest(symbol="PF_XBTUSD", side="buy", size=Decimal("0.001"))
    )

    call = fake_client.calls[0]
    headers = call["headers"]
    assert call["url"] == f"{_BASE_URL}/derivatives/api/v3/sendorder"
    assert parse_qs(call["content"]) == {
        "orderType": ["mkt"],
        "symbol": ["PF_XBTUSD"],
        "side": ["buy"],
        "size": ["0.001"],
    }
    assert headers["APIKey"] == "public-key"
    assert headers["Nonce"] == "170000000000000001"

    expected_digest = hashlib.sha256(f"{call['content']}{headers['Nonce']}/api/v3/sendorder".encode("utf-8")).digest()
    expected_signature = base64.b64encode(
        hmac.new(base64.b64decode(_API_SECRET), expected_digest, hashlib.sha512).digest()
    ).decode("ascii")
    assert headers["Authent"] == expected_signature

    assert placement.order_id == "c18f0c17-9971-40e6-8e5b-10df05d422f0"
    assert placement.status == "placed"
    assert placement.execution_price == Decimal("27960.0")
    assert placement.applied_trade is None


def test_kraken_adapter_nonce_counter_wraps() -> None:
    """Wrap the nonce counter back to zero after 9999.

    Returns:
        None: Assertions validate nonce format.

    Raises:
        AssertionError: Raised when the counter does not wrap.
    """

    adapter = _build_adapter()

    nonces = [adapter.adapter_next_nonce() for _ in range(10000)]

    assert nonces[0] == "170000000000000001"
    assert nonces[9998] == "170000000000009999"
    assert nonces[9999] == "170000000000000000"


def test_kraken_adapter_maps_rejected_order(monkeypatch: pytest.MonkeyPatch) -> None:
    """Raise order rejected error with upstream status as code.

    Returns:
        None: Assertions validate rejection mapping.

    Raises:
        AssertionError: Raised when rejection is not surfaced.
    """

    _install_fake_client(
        monkeypatch,
        [httpx.Response(200, json={"result": "success", "sendStatus": {"status": "insufficientAvailableFunds"}})],
    )

    with pytest.raises(ExchangeOrderRejectedError) as error_info:
        _build_adapter().adapter_place_order(MarketTradeRequest(symbol="PF_XBTUSD", side="sell", size=Decimal("1")))

    assert error_info.value.error_code == "insufficientAvailableFunds"


def test_kraken_adapter_requires_credentials_for_private_endpoints() -> None:
    """Refuse private calls when the adapter has no credentials.

    Returns:
        None: Assertions validate credentials guard.

    Raises:
        AssertionError: Raised when unsigned private call is attempted.
    """

    with pytest.raises(ExchangeCredentialsError):
        _build_adapter(with_credentials=False).adapter_get_fills()


def test_kraken_adapter_rejects_half_configured_credentials() -> None:
    """Reject an API key without a secret at construction time.

    Returns:
        None: Assertions validate constructor guard.

    Raises:
        AssertionError: Raised when partial credentials are accepted.
    """

    with pytest.raises(ValueError):
        KrakenFuturesAdapter(api_key="public-key", api_secret=None)


def test_kraken_adapter_filters_fills_by_time(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep fills newer than the lower bound.

    Returns:
        None: Assertions validate fill filtering.

    Raises:
        AssertionError: Raised when older fills are returned.
    """

    _install_fake_client(
        monkeypatch,
        [
            httpx.Response(
                200,
                json={
                    "result": "success",
                    "fills": [
                        {"fill_id": "a", "side": "buy", "size": 1, "price": 100, "fillTime": "2026-06-01T10:00:00.000Z"},
                        {"fill_id": "b", "side": "sell", "size": 1, "price": 101, "fillTime": "2026-06-01T11:00:00.000Z"},
                    ],
                },
            )
        ],
    )

    fills = _build_adapter().adapter_get_fills(datetime(2026, 6, 1, 10, 30, tzinfo=timezone.utc))

    assert [fill["fill_id"] for fill in fills] == ["b"]


@pytest.mark.parametrize(
    ("queued_response", "expected_error"),
    [
        (httpx.ReadTimeout("timed out"), ExchangeAdapterTimeoutError),
        (httpx.ConnectError("refused"), ExchangeAdapterConnectionError),
        (httpx.Response(503, text="unavailable"), ExchangeAdapterConnectionError),
        (httpx.Response(200, text="<html>"), ExchangeRequestError),
        (httpx.Response(200, json={"result": "error", "error": "apiLimitExceeded"}), ExchangeRequestError),
    ],
)
def test_kraken_adapter_maps_transport_failures(
    monkeypatch: pytest.MonkeyPatch,
    queued_response: object,
    expected_error: type[Exception],
) -> None:
    """Map httpx failures and error bodies to adapter exceptions.

    Args:
        monkeypatch: Pytest monkeypatch fixture.
        queued_response: Response or exception served by the fake client.
        expected_error: Expected adapter exception type.

    Returns:
        None: Assertions validate exception mapping.

    Raises:
        AssertionError: Raised when mapping is incorrect.
    """

    _install_fake_client(monkeypatch, [queued_response])

    with pytest.raises(expected_error):
        _build_adapter().adapter_get_mark_price("PF_XBTUSD")
