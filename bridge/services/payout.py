"""
Payout Client (Xendit Payouts v2).

The transaction id is sent both as `external_id` and as the `Idempotency-Key`
header, so a retried call with the same key and parameters cannot create a
second disbursement.
"""
from __future__ import annotations

import logging

import requests
from pydantic import BaseModel

from bridge.core.errors import (
    AuthenticationError,
    PayoutPreconditionError,
    PayoutRejectedError,
    UnsupportedChannelError,
    UpstreamUnavailableError,
)
from bridge.services.http import parse_json, send

logger = logging.getLogger(__name__)

SERVICE = "payout"

# Internal bank / e-wallet code -> provider channel code
CHANNEL_CODES: dict[str, str] = {
    # State-owned banks
    "BCA": "ID_BCA",
    "MANDIRI": "ID_MANDIRI",
    "BRI": "ID_BRI",
    "BNI": "ID_BNI",
    "BTN": "ID_BTN",
    "BSI": "ID_BSI",
    # Private & commercial banks
    "CIMB": "ID_CIMB",
    "PERMATA": "ID_PERMATA",
    "DANAMON": "ID_DANAMON",
    "DBS": "ID_DBS",
    "MAYBANK": "ID_MAYBANK",
    "MEGA": "ID_MEGA",
    "OCBC": "ID_OCBC",
    "PANIN": "ID_PANIN",
    "SINARMAS": "ID_SINARMAS",
    "UOB": "ID_UOB",
    "BUKOPIN": "ID_BUKOPIN",
    # Digital banks
    "BTPN": "ID_BTPN",
    "JAGO": "ID_JAGO",
    "NEO": "ID_NEO",
    "SEABANK": "ID_SEABANK",
    "ALADIN": "ID_ALADIN",
    # Syariah units
    "BCA_SYARIAH": "ID_BCA_SYR",
    "CIMB_SYARIAH": "ID_CIMB_SYR",
    # E-wallets
    "GOPAY": "ID_GOPAY",
    "OVO": "ID_OVO",
    "DANA": "ID_DANA",
    "SHOPEEPAY": "ID_SHOPEEPAY",
    "LINKAJA": "ID_LINKAJA",
    "SAKUKU": "ID_SAKUKU",
}

EWALLET_CODES = frozenset({"GOPAY", "OVO", "DANA", "SHOPEEPAY", "LINKAJA", "SAKUKU"})


def resolve_channel_code(bank_code: str) -> str:
    channel = CHANNEL_CODES.get(bank_code.strip().upper())
    if channel is None:
        raise UnsupportedChannelError(bank_code)
    return channel


class PayoutResponse(BaseModel):
    id: str
    external_id: str
    amount: int
    channel_code: str
    status: str
    created: str | None = None
    updated: str | None = None


class XenditPayoutClient:
    def __init__(
        self,
        secret_key: str,
        base_url: str,
        timeout: float,
        currency: str = "IDR",
        session: requests.Session | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.currency = currency
        self.session = session or requests.Session()

    def payout(
        self,
        idempotency_key: str,
        amount_minor: int,
        bank_code: str,
        account_number: str,
        account_name: str,
    ) -> str:
        """
        Initiate a disbursement and return the provider's payout id.

        bank_code is our internal code (BCA, GOPAY, ...). Unknown codes and
        non-positive amounts fail before any request is sent.
        """
        channel_code = resolve_channel_code(bank_code)
        if amount_minor <= 0:
            raise PayoutPreconditionError(f"Payout amount must be positive, got {amount_minor}")
        if not account_number or not account_name:
            raise PayoutPreconditionError("Destination account number and name are required")

        payload = {
            "external_id": idempotency_key,
            "amount": int(amount_minor),
            "currency": self.currency,
            "channel_code": channel_code,
            "channel_properties": {
                "account_holder_name": account_name,
                "account_number": account_number,
            },
            "description": f"Nusantara Bridge Payout {idempotency_key}",
        }

        response = send(
            self.session,
            "POST",
            f"{self.base_url}/v2/payouts",
            service=SERVICE,
            timeout=self.timeout,
            json=payload,
            auth=(self.secret_key, ""),
            headers={"Idempotency-Key": idempotency_key},
        )

        if response.status_code in (401, 403):
            raise AuthenticationError(SERVICE, f"HTTP {response.status_code}", response.status_code)
        if 400 <= response.status_code < 500:
            raise PayoutRejectedError(
                SERVICE, f"HTTP {response.status_code}: {response.text[:500]}", response.status_code
            )
        if response.status_code not in (200, 201):
            raise UpstreamUnavailableError(SERVICE, f"HTTP {response.status_code}", response.status_code)

        data: PayoutResponse = parse_json(response, PayoutResponse, service=SERVICE)
        logger.info(
            "Payout %s accepted for %s: %s %s via %s (status=%s)",
            data.id, idempotency_key, data.amount, self.currency, data.channel_code, data.status,
        )
        return data.id
