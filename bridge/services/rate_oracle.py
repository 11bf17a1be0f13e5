from __future__ import annotations

from decimal import Decimal, InvalidOperation

import requests
from pydantic import BaseModel

from bridge.core.errors import NoLiquidityError, UpstreamResponseError, UpstreamUnavailableError
from bridge.services.http import parse_json, send

SERVICE = "rate-oracle"


class Ticker(BaseModel):
    buy: str   # highest bid
    sell: str | None = None
    last: str | None = None
    server_time: int | None = None


class TickerResponse(BaseModel):
    ticker: Ticker


class IndodaxRateOracle:
    """Public ticker endpoint; `buy` is the best bid we sell into."""

    def __init__(self, base_url: str, timeout: float, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def best_bid(self, pair: str) -> Decimal:
        response = send(
            self.session,
            "GET",
            f"{self.base_url}/api/ticker/{pair}",
            service=SERVICE,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise UpstreamUnavailableError(
                SERVICE, f"HTTP {response.status_code} for ticker {pair}", response.status_code
            )

        data: TickerResponse = parse_json(response, TickerResponse, service=SERVICE)
        try:
            price = Decimal(data.ticker.buy)
        except InvalidOperation as exc:
            raise UpstreamResponseError(SERVICE, f"invalid price format for {pair}: {data.ticker.buy!r}") from exc

        if not price.is_finite() or price < 0:
            raise UpstreamResponseError(SERVICE, f"invalid price for {pair}: {data.ticker.buy!r}")
        if price == 0:
            raise NoLiquidityError(SERVICE, f"no bids for {pair}")
        return price
