from datetime import datetime
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from bridge.db.base import Base


class PayoutDestination(Base):
    __tablename__ = "payout_destinations"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    bank_code: Mapped[str] = mapped_column(String(32), nullable=False)  # internal code, e.g. BCA / GOPAY
    account_number: Mapped[str] = mapped_column(String(64), nullable=False)
    account_name: Mapped[str] = mapped_column(String(128), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
