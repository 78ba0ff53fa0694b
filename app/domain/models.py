"""Typed domain models shared across runtime layers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str


@dataclass(frozen=True)
class MarketSnapshot:
    """Market values observed at the start of one trading cycle.

    Attributes:
        symbol: Tracked symbol.
        mark_price: Mark price used as the clearing price for the cycle.
        observed_at_utc: ISO-8601 timestamp of the observation.
    """

    symbol: str
    mark_price: str
    observed_at_utc: str

    def as_payload(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "mark_price": self.mark_price,
            "observed_at_utc": self.observed_at_utc,
        }
