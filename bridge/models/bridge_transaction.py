import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bridge.db.base import Base


class BridgeStatus(str, enum.Enum):
    PENDING_DEPOSIT = "PENDING_DEPOSIT"  # reserved, never entered by the orchestrator
    DEPOSIT_CONFIRMED = "DEPOSIT_CONFIRMED"
    EXCHANGED = "EXCHANGED"
    PAYOUT_INITIATED = "PAYOUT_INITIATED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS: dict[BridgeStatus, frozenset[BridgeStatus]] = {
    BridgeStatus.PENDING_DEPOSIT: frozenset({BridgeStatus.DEPOSIT_CONFIRMED}),
    BridgeStatus.DEPOSIT_CONFIRMED: frozenset({BridgeStatus.EXCHANGED, BridgeStatus.FAILED}),
    BridgeStatus.EXCHANGED: frozenset({BridgeStatus.PAYOUT_INITIATED, BridgeStatus.FAILED}),
    BridgeStatus.PAYOUT_INITIATED: frozenset({BridgeStatus.COMPLETED, BridgeStatus.FAILED}),
    BridgeStatus.COMPLETED: frozenset(),
    BridgeStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BridgeStatus.COMPLETED, BridgeStatus.FAILED})


def can_transition(current: str, target: str) -> bool:
    return BridgeStatus(target) in ALLOWED_TRANSITIONS[BridgeStatus(current)]


def new_transaction_id() -> str:
    return uuid.uuid4().hex


class BridgeTransaction(Base):
    """One row per detected deposit. Never deleted."""

    __tablename__ = "bridge_transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_transaction_id)
    deposit_tx_hash: Mapped[str] = mapped_column(String(80), unique=True, index=True, nullable=False)
    client_wallet_address: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    stable_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # atomic units
    exchange_rate: Mapped[int] = mapped_column(BigInteger, nullable=False)  # IDR per whole unit
    fiat_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)    # net IDR

    exchange_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payout_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(24), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class BridgeStatusChange(Base):
    """Append-only transition log, written in the same commit as the status change."""

    __tablename__ = "bridge_status_changes"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("bridge_transactions.id"), index=True, nullable=False
    )
    from_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    to_status: Mapped[str] = mapped_column(String(24), nullable=False)
    step: Mapped[str] = mapped_column(String(32), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
