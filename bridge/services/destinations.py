from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bridge.models.payout_destination import PayoutDestination
from bridge.services.payout import resolve_channel_code


@dataclass(frozen=True)
class Destination:
    bank_code: str
    account_number: str
    account_name: str


def default_destination(
    bank_code: str | None, account_number: str | None, account_name: str | None
) -> Optional[Destination]:
    if bank_code and account_number and account_name:
        return Destination(bank_code, account_number, account_name)
    return None


class DestinationService:
    """Maps a depositing wallet to the bank / e-wallet account that receives the Rupiah."""

    def __init__(self, db: Session, fallback: Optional[Destination] = None):
        self.db = db
        self.fallback = fallback

    def get(self, wallet_address: str) -> Optional[PayoutDestination]:
        stmt = select(PayoutDestination).where(PayoutDestination.wallet_address == wallet_address.lower())
        return self.db.scalar(stmt)

    def resolve(self, wallet_address: str) -> Optional[Destination]:
        row = self.get(wallet_address)
        if row is not None:
            return Destination(row.bank_code, row.account_number, row.account_name)
        return self.fallback

    def upsert(self, wallet_address: str, bank_code: str, account_number: str, account_name: str) -> PayoutDestination:
        # raises UnsupportedChannelError before anything is written
        resolve_channel_code(bank_code)

        row = self.get(wallet_address)
        if row is None:
            row = PayoutDestination(wallet_address=wallet_address.lower())
            self.db.add(row)

        row.bank_code = bank_code.strip().upper()
        row.account_number = account_number
        row.account_name = account_name
        row.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(row)
        return row
