from pydantic import BaseModel


class QuoteOut(BaseModel):
    pair: str
    stable_amount: int
    rate: int
    gross_fiat: int
    fee: int
    net_fiat: int
