from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_ATOMIC_AMOUNT = 2**63 - 1  # BIGINT column


class DepositWebhookIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash", pattern=r"^0x[0-9a-fA-F]{64}$")
    from_address: str = Field(..., alias="from", pattern=r"^0x[0-9a-fA-F]{40}$")
    amount: str = Field(..., pattern=r"^[0-9]+$")

    @field_validator("tx_hash", "from_address")
    @classmethod
    def _lowercase_hex(cls, value: str) -> str:
        return value.lower()

    @field_validator("amount")
    @classmethod
    def _positive_int64(cls, value: str) -> str:
        amount = int(value)
        if amount <= 0:
            raise ValueError("amount must be greater than zero")
        if amount > MAX_ATOMIC_AMOUNT:
            raise ValueError("amount is too large")
        return value

    @property
    def atomic_amount(self) -> int:
        return int(self.amount)


class DepositAck(BaseModel):
    success: bool
    message: str
    transaction_id: str | None = None
    status: str | None = None
    duplicate: bool = False
