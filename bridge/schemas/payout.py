from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class PayoutCallbackIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    external_id: str
    status: str
    amount: int | None = None
    failure_code: str | None = None


class PayoutCallbackAck(BaseModel):
    transaction_id: str
    status: str
    changed: bool


class DestinationIn(BaseModel):
    bank_code: str = Field(..., min_length=2, max_length=32)
    account_number: str = Field(..., min_length=3, max_length=64, pattern=r"^[0-9+]+$")
    account_name: str = Field(..., min_length=1, max_length=128)


class DestinationOut(BaseModel):
    wallet_address: str
    bank_code: str
    account_number: str
    account_name: str
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankChannelOut(BaseModel):
    code: str
    channel_code: str
    kind: str  # BANK / EWALLET
