from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from bridge.core.config import settings
from bridge.db.session import SessionLocal, get_db
from bridge.services.destinations import default_destination
from bridge.services.event_publisher import EventPublisher
from bridge.services.exchange import IndodaxExchangeClient
from bridge.services.payout import XenditPayoutClient
from bridge.services.rate_oracle import IndodaxRateOracle
from bridge.services.settlement import SettlementOrchestrator

__all__ = ["get_db", "get_publisher", "get_rate_oracle", "get_orchestrator", "require_ingress_token"]


@lru_cache
def get_publisher() -> EventPublisher:
    return EventPublisher()


@lru_cache
def get_rate_oracle() -> IndodaxRateOracle:
    return IndodaxRateOracle(settings.exchange_base_url, timeout=settings.http_timeout_seconds)


@lru_cache
def get_orchestrator() -> SettlementOrchestrator:
    return SettlementOrchestrator(
        session_factory=SessionLocal,
        rate_oracle=get_rate_oracle(),
        exchange=IndodaxExchangeClient(
            api_key=settings.exchange_api_key,
            secret_key=settings.exchange_secret_key,
            base_url=settings.exchange_base_url,
            timeout=settings.http_timeout_seconds,
            asset_decimals=settings.stablecoin_decimals,
            amount_param=settings.exchange_amount_param,
        ),
        payouts=XenditPayoutClient(
            secret_key=settings.payout_secret_key,
            base_url=settings.payout_base_url,
            timeout=settings.http_timeout_seconds,
            currency=settings.payout_currency,
        ),
        pair=settings.exchange_pair,
        stable_decimals=settings.stablecoin_decimals,
        fallback_destination=default_destination(
            settings.payout_default_bank_code,
            settings.payout_default_account_number,
            settings.payout_default_account_name,
        ),
        publisher=get_publisher(),
    )


def require_ingress_token(x_internal_token: str | None = Header(default=None, alias="X-Internal-Token")) -> None:
    if settings.ingress_token and x_internal_token != settings.ingress_token:
        raise HTTPException(status_code=401, detail="Invalid internal token")
