"""Domain models used across application layer boundaries."""

from .models import HealthStatus, MarketSnapshot
from .timeline import domain_build_stage_event
from .trade_requests import (
	DOMAIN_DEFAULT_TICK_SIZE,
	domain_describe_trade_request,
	domain_normalize_order_size,
	domain_parse_trade_plan,
)

__all__ = [
	"DOMAIN_DEFAULT_TICK_SIZE",
	"HealthStatus",
	"MarketSnapshot",
	"domain_build_stage_event",
	"domain_describe_trade_request",
	"domain_normalize_order_size",
	"domain_parse_trade_plan",
]
