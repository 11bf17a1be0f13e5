from datetime import datetime
from pydantic import BaseModel, ConfigDict


class StatusChangeOut(BaseModel):
    from_status: str | None
    to_status: str
    step: str
    detail: str | None = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionOut(BaseModel):
    id: str
    deposit_tx_hash: str
    client_wallet_address: str
    stable_amount: int
    exchange_rate: int
    fiat_amount: int
    exchange_order_id: str | None = None
    payout_id: str | None = None
    failure_reason: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionDetailOut(TransactionOut):
    history: list[StatusChangeOut] = []
