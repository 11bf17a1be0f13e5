"""
Exchange Execution Client (Indodax private trade API).

The request body is form-encoded with keys in sorted order and the signature
is HMAC-SHA512 over exactly that body, so identical parameters (nonce
included) always produce identical bytes and an identical signature.

There is no order-level idempotency token on this API. A failed sell is never
retried automatically: the orchestrator marks the transaction FAILED and an
operator confirms the order's fate on the exchange.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Callable
from urllib.parse import urlencode

import requests
from pydantic import BaseModel, ConfigDict, Field

from bridge.core.errors import (
    AuthenticationError,
    OrderRejectedError,
    UpstreamResponseError,
    UpstreamUnavailableError,
)
from bridge.services.fees import format_units
from bridge.services.http import parse_json, send

logger = logging.getLogger(__name__)

SERVICE = "exchange"

AUTH_ERROR_CODES = {"invalid_credentials", "bad_sign", "invalid_key", "unauthorized"}


class TradeResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: int | str


class TradeResponse(BaseModel):
    success: int
    result: TradeResult | None = Field(default=None, alias="return")
    error: str | None = None
    error_code: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_auth_failure(payload: TradeResponse) -> bool:
    if payload.error_code and payload.error_code.lower() in AUTH_ERROR_CODES:
        return True
    message = (payload.error or "").lower()
    return message.startswith("invalid credentials") or "bad sign" in message


class IndodaxExchangeClient:
    def __init__(
        self,
        api_key: str,
        secret_key: str,
        base_url: str,
        timeout: float,
        asset_decimals: int = 6,
        amount_param: str | None = None,
        session: requests.Session | None = None,
        nonce_factory: Callable[[], int] = _now_ms,
    ):
        self.api_key = api_key
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.asset_decimals = asset_decimals
        self.amount_param = amount_param
        self.session = session or requests.Session()
        self.nonce_factory = nonce_factory

    def sign(self, body: str) -> str:
        return hmac.new(self.secret_key.encode(), body.encode(), hashlib.sha512).hexdigest()

    def build_sell_request(self, pair: str, amount: int, price: int, nonce: int) -> tuple[str, dict[str, str]]:
        """
        Returns (encoded_body, headers) for a limit sell of `amount` atomic
        units at `price`. Pure: same arguments, same output.
        """
        base_asset = pair.split("_")[0]
        params = {
            "method": "trade",
            "nonce": str(nonce),
            "pair": pair,
            "price": str(price),
            "type": "sell",
            self.amount_param or base_asset: format_units(amount, self.asset_decimals),
        }
        body = urlencode(sorted(params.items()))
        headers = {
            "Key": self.api_key,
            "Sign": self.sign(body),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        return body, headers

    def sell(self, pair: str, amount: int, price: int) -> str:
        if amount <= 0:
            raise OrderRejectedError(SERVICE, f"amount must be positive, got {amount}")
        if price <= 0:
            raise OrderRejectedError(SERVICE, f"price must be positive, got {price}")

        body, headers = self.build_sell_request(pair, amount, price, self.nonce_factory())
        response = send(
            self.session,
            "POST",
            f"{self.base_url}/tapi",
            service=SERVICE,
            timeout=self.timeout,
            data=body,
            headers=headers,
        )

        if response.status_code in (401, 403):
            raise AuthenticationError(SERVICE, f"HTTP {response.status_code}", response.status_code)

        payload: TradeResponse = parse_json(response, TradeResponse, service=SERVICE)
        if payload.success != 1:
            message = payload.error or payload.error_code or "unknown error"
            if _is_auth_failure(payload):
                raise AuthenticationError(SERVICE, message, response.status_code)
            raise OrderRejectedError(SERVICE, message, response.status_code)

        if response.status_code != 200:
            raise UpstreamUnavailableError(SERVICE, f"HTTP {response.status_code}", response.status_code)
        if payload.result is None:
            raise UpstreamResponseError(SERVICE, "trade succeeded but no order_id returned")

        order_id = str(payload.result.order_id)
        logger.info("Sell order %s placed: %s %s @ %s", order_id, format_units(amount, self.asset_decimals), pair, price)
        return order_id
