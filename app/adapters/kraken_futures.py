"""Kraken Futures v3 REST adapter for mark prices, fills and market orders."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Final
from urllib.parse import urlencode

import httpx

from app.domain import domain_build_stage_event
from app.ledger import MarketTradeRequest

from .exchange_errors import (
    ExchangeAdapterConnectionError,
    ExchangeAdapterTimeoutError,
    ExchangeCredentialsError,
    ExchangeOrderRejectedError,
    ExchangeRequestError,
    MarkPriceUnavailableError,
)
from .interfaces import ExchangeAdapterPort, OrderPlacementResult

logger = logging.getLogger(__name__)


class KrakenFuturesAdapter(ExchangeAdapterPort):
    """Adapter implementation for the Kraken Futures `derivatives/api/v3` REST surface.

    Public endpoints (`tickers`) are called without credentials. Private
    endpoints (`fills`, `sendorder`) are signed with `APIKey`, `Nonce` and
    `Authent` headers. The nonce counter belongs to the instance.
    """

    _USER_AGENT: Final[str] = "futures-position-ledger/1.0 (Python/httpx)"
    _TICKERS_ENDPOINT: Final[str] = "/derivatives/api/v3/tickers"
    _FILLS_ENDPOINT: Final[str] = "/derivatives/api/v3/fills"
    _SEND_ORDER_ENDPOINT: Final[str] = "/derivatives/api/v3/sendorder"
    _SIGNATURE_PATH_PREFIX: Final[str] = "/derivatives"
    _NONCE_COUNTER_LIMIT: Final[int] = 9999
    _PLACED_STATUS: Final[str] = "placed"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str = "https://demo-futures.kraken.com",
        request_timeout_seconds: float = 10.0,
        epoch_millis_provider: Callable[[], int] | None = None,
    ):
        """Initialize Kraken Futures adapter.

        Args:
            api_key: Optional public API key, required for private endpoints.
            api_secret: Optional base64-encoded API secret, required for private endpoints.
            base_url: Base endpoint URL.
            request_timeout_seconds: HTTP request timeout in seconds.
            epoch_millis_provider: Optional clock returning epoch milliseconds for nonces.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when config values are invalid.
        """

        normalized_base_url = base_url.strip()
        normalized_api_key = (api_key or "").strip()
        normalized_api_secret = (api_secret or "").strip()

        if not normalized_base_url:
            raise ValueError("base_url must not be blank")
        if request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        if bool(normalized_api_key) != bool(normalized_api_secret):
            raise ValueError("api_key and api_secret must be provided together")
        if normalized_api_secret:
            try:
                base64.b64decode(normalized_api_secret, validate=True)
            except ValueError as error:
                raise ValueError("api_secret must be base64-encoded") from error

        self._api_key = normalized_api_key
        self._api_secret = normalized_api_secret
        self._base_url = normalized_base_url.rstrip("/")
        self._request_timeout_seconds = request_timeout_seconds
        self._epoch_millis_provider = epoch_millis_provider or (lambda: int(time.time() * 1000))
        self._nonce_counter = 0
        self._http_client: httpx.Client | None = None

    def adapter_source_name(self) -> str:
        """Return stable adapter source label.

        Returns:
            str: Source identifier.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return "kraken_futures"

    def adapter_get_mark_price(self, symbol: str) -> Decimal:
        """Fetch the mark price of one symbol from the public tickers endpoint.

        Args:
            symbol: Kraken Futures symbol (for example `PF_XBTUSD`).

        Returns:
            Decimal: Positive mark price.

        Raises:
            ConnectionError: Raised for network and HTTP status failures.
            TimeoutError: Raised when the request times out.
            ValueError: Raised when the response contract is invalid.
            RuntimeError: Raised when the symbol is not quoted.
        """

        normalized_symbol = symbol.strip()
        if not normalized_symbol:
            raise ValueError("symbol must not be blank")

        response_payload = self._adapter_request(method="GET", endpoint=self._TICKERS_ENDPOINT, private=False)
        tickers = response_payload.get("tickers")
        if not isinstance(tickers, list):
            raise ExchangeRequestError("Kraken tickers response missing tickers list")

        for ticker in tickers:
            if not isinstance(ticker, dict) or ticker.get("symbol") != normalized_symbol:
                continue
            mark_price = self._adapter_parse_decimal(ticker.get("markPrice"))
            if mark_price is None or mark_price <= Decimal("0"):
                raise MarkPriceUnavailableError(f"Kraken ticker for symbol={normalized_symbol} has no valid markPrice")
            return mark_price

        raise MarkPriceUnavailableError(f"Kraken tickers response has no symbol={normalized_symbol}")

    def adapter_get_fills(self, since: datetime | None = None) -> list[dict[str, Any]]:
        """Fetch recent account fills and keep those newer than `since`.

        Kraken returns the most recent fills; filtering by `since` happens here
        so the caller receives only fills it has not seen.

        Args:
            since: Exclusive lower bound on fill time, None for all returned fills.

        Returns:
            list[dict[str, Any]]: Raw Kraken fill mappings.

        Raises:
            ConnectionError: Raised for network and HTTP status failures.
            TimeoutError: Raised when the request times out.
            ValueError: Raised when credentials are missing or response contract is invalid.
        """

        response_payload = self._adapter_request(method="GET", endpoint=self._FILLS_ENDPOINT, private=True)
        fills = response_payload.get("fills")
        if not isinstance(fills, list):
            raise ExchangeRequestError("Kraken fills response missing fills list")

        raw_fills = [fill for fill in fills if isinstance(fill, dict)]
        if since is None:
            return raw_fills
        return [fill for fill in raw_fills if self._adapter_fill_is_newer(fill=fill, since=since)]

    def adapter_place_order(self, request: MarketTradeRequest) -> OrderPlacementResult:
        """Send one market order through the private `sendorder` endpoint.

        Args:
            request: Validated market trade request.

        Returns:
            OrderPlacementResult: Upstream order id, status and execution price when reported.

        Raises:
            ConnectionError: Raised for network and HTTP status failures.
            TimeoutError: Raised when the request times out.
            ValueError: Raised when credentials are missing or the order is rejected.
        """

        if request is None:
            raise ValueError("request must not be None")

        stage_timeline: list[dict[str, object]] = []
        order_parameters = {
            "orderType": request.order_type,
            "symbol": request.symbol,
            "side": request.side,
            "size": format(request.size, "f"),
        }
        stage_timeline.append(
            domain_build_stage_event(stage="send_order", status="started", details={"symbol": request.symbol})
        )
        response_payload = self._adapter_request(
            method="POST",
            endpoint=self._SEND_ORDER_ENDPOINT,
            private=True,
            parameters=order_parameters,
        )

        send_status = response_payload.get("sendStatus")
        if not isinstance(send_status, dict):
            raise ExchangeRequestError("Kraken sendorder response missing sendStatus")

        status_value = str(send_status.get("status") or "").strip()
        order_id = str(send_status.get("order_id") or send_status.get("orderId") or "").strip()
        if status_value != self._PLACED_STATUS:
            raise ExchangeOrderRejectedError(
                f"Kraken rejected order: status={status_value or 'UNKNOWN'}",
                error_code=status_value or None,
            )

        execution_price = self._adapter_extract_execution_price(send_status)
        stage_timeline.append(
            domain_build_stage_event(
                stage="send_order",
                status="completed",
                details={"order_id": order_id, "execution_price": None if execution_price is None else str(execution_price)},
            )
        )
        logger.info("kraken order placed order_id=%s side=%s size=%s", order_id, request.side, request.size)
        return OrderPlacementResult(
            order_id=order_id,
            status=status_value,
            execution_price=execution_price,
            stage_timeline=stage_timeline,
        )

    def adapter_sign_request(self, endpoint: str, nonce: str, post_data: str) -> str:
        """Compute the `Authent` header for one private request.

        The digest is `HMAC-SHA512(base64decode(secret), SHA256(post_data + nonce + path))`
        where `path` is the endpoint without its `/derivatives` prefix.

        Args:
            endpoint: Endpoint path including the `/derivatives` prefix.
            nonce: Request nonce.
            post_data: URL-encoded request parameters.

        Returns:
            str: Base64-encoded signature.

        Raises:
            ValueError: Raised when credentials are missing.
        """

        if not self._api_secret:
            raise ExchangeCredentialsError("Kraken private endpoint requires api_key and api_secret")

        signature_path = endpoint.replace(self._SIGNATURE_PATH_PREFIX, "", 1)
        message_digest = hashlib.sha256(f"{post_data}{nonce}{signature_path}".encode("utf-8")).digest()
        signature = hmac.new(base64.b64decode(self._api_secret), message_digest, hashlib.sha512).digest()
        return base64.b64encode(signature).decode("ascii")

    def adapter_next_nonce(self) -> str:
        """Return a monotonically varying nonce of epoch millis plus a 5-digit counter.

        Returns:
            str: Nonce value.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        self._nonce_counter += 1
        if self._nonce_counter > self._NONCE_COUNTER_LIMIT:
            self._nonce_counter = 0
        return f"{self._epoch_millis_provider()}{self._nonce_counter:05d}"

    def _adapter_request(
        self,
        method: str,
        endpoint: str,
        private: bool,
        parameters: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute one HTTP request and return the decoded JSON body.

        Args:
            method: `GET` or `POST`.
            endpoint: Endpoint path.
            private: Whether the endpoint requires signed headers.
            parameters: Optional query (GET) or form (POST) parameters.

        Returns:
            dict[str, Any]: Decoded response body.

        Raises:
            ConnectionError: Raised for network and non-success HTTP status.
            TimeoutError: Raised when the request times out.
            ValueError: Raised for non-JSON bodies or upstream error results.
        """

        encoded_parameters = urlencode(parameters or {})
        headers = {"User-Agent": self._USER_AGENT}
        if private:
            if not self._api_key:
                raise ExchangeCredentialsError("Kraken private endpoint requires api_key and api_secret")
            nonce = self.adapter_next_nonce()
            headers["APIKey"] = self._api_key
            headers["Nonce"] = nonce
            headers["Authent"] = self.adapter_sign_request(endpoint=endpoint, nonce=nonce, post_data=encoded_parameters)

        url = f"{self._base_url}{endpoint}"
        http_client = self._adapter_http_client()
        try:
            if method == "POST":
                headers["Content-Type"] = "application/x-www-form-urlencoded"
                response = http_client.post(url, content=encoded_parameters, headers=headers)
            else:
                response = http_client.get(url, params=parameters or {}, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as error:
            raise ExchangeAdapterTimeoutError(f"Kraken {method} {endpoint} timed out") from error
        except httpx.HTTPStatusError as error:
            raise ExchangeAdapterConnectionError(
                f"Kraken {method} {endpoint} returned HTTP {error.response.status_code}",
                error_code=str(error.response.status_code),
            ) from error
        except httpx.HTTPError as error:
            raise ExchangeAdapterConnectionError(f"Kraken {method} {endpoint} transport failed") from error

        try:
            response_payload = response.json()
        except ValueError as error:
            raise ExchangeRequestError(f"Kraken {method} {endpoint} returned non-JSON body") from error

        if not isinstance(response_payload, dict):
            raise ExchangeRequestError(f"Kraken {method} {endpoint} returned unexpected body type")

        result_value = response_payload.get("result")
        if result_value is not None and result_value != "success":
            upstream_error = str(response_payload.get("error") or "unknown error")
            raise ExchangeRequestError(
                f"Kraken {method} {endpoint} failed: {upstream_error}",
                error_code=upstream_error,
            )
        return response_payload

    def _adapter_http_client(self) -> httpx.Client:
        """Return pooled HTTP client, creating it on first use."""

        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._request_timeout_seconds)
        return self._http_client

    def _adapter_extract_execution_price(self, send_status: dict[str, Any]) -> Decimal | None:
        """Return the first execution price reported in `orderEvents`, if any.

        Args:
            send_status: `sendStatus` response object.

        Returns:
            Decimal | None: Execution price or None when not reported.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        order_events = send_status.get("orderEvents")
        if not isinstance(order_events, list):
            return None
        for order_event in order_events:
            if not isinstance(order_event, dict) or order_event.get("type") != "EXECUTION":
                continue
            execution_price = self._adapter_parse_decimal(order_event.get("price"))
            if execution_price is not None and execution_price > Decimal("0"):
                return execution_price
        return None

    def _adapter_fill_is_newer(self, fill: dict[str, Any], since: datetime) -> bool:
        raw_fill_time = fill.get("fillTime") or fill.get("fill_time")
        if not isinstance(raw_fill_time, str) or not raw_fill_time.strip():
            return True
        normalized_fill_time = raw_fill_time.strip()
        if normalized_fill_time.endswith("Z"):
            normalized_fill_time = f"{normalized_fill_time[:-1]}+00:00"
        try:
            fill_time = datetime.fromisoformat(normalized_fill_time)
        except ValueError:
            return True
        if fill_time.tzinfo is None:
            fill_time = fill_time.replace(tzinfo=timezone.utc)
        return fill_time > since

    def _adapter_parse_decimal(self, value: object) -> Decimal | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            parsed_value = Decimal(str(value))
        except InvalidOperation:
            return None
        return parsed_value if parsed_value.is_finite() else None
