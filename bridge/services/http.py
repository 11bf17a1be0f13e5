"""
Shared request helper for the exchange, oracle and payout clients.

Every call carries a bounded timeout; connection errors and timeouts surface
as UpstreamUnavailableError so callers can tell them apart from rejections.
"""
from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, ValidationError

from bridge.core.errors import UpstreamResponseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


def send(
    session: requests.Session,
    method: str,
    url: str,
    *,
    service: str,
    timeout: float,
    **kwargs: Any,
) -> requests.Response:
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise UpstreamUnavailableError(service, f"timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise UpstreamUnavailableError(service, f"request failed: {exc}") from exc

    logger.debug("%s %s %s -> %s", service, method, url, response.status_code)
    if response.status_code >= 500:
        raise UpstreamUnavailableError(
            service, f"HTTP {response.status_code}: {response.text[:200]}", response.status_code
        )
    return response


def parse_json(response: requests.Response, model: type[BaseModel], *, service: str) -> Any:
    try:
        payload = response.json()
    except ValueError as exc:
        raise UpstreamResponseError(
            service, f"response is not JSON: {response.text[:200]!r}", response.status_code
        ) from exc

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamResponseError(
            service, f"unexpected response shape: {exc.errors()[:3]}", response.status_code
        ) from exc
