"""
Ledger Store
Durable record of bridge transactions. The unique index on deposit_tx_hash is
the mutex between concurrent deliveries of the same deposit; the status
column is the checkpoint.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bridge.core.errors import DuplicateDepositError, InvalidTransitionError
from bridge.models.bridge_transaction import (
    BridgeStatus,
    BridgeStatusChange,
    BridgeTransaction,
    can_transition,
)

logger = logging.getLogger(__name__)


class LedgerStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Optional[BridgeTransaction]:
        return self.db.get(BridgeTransaction, transaction_id)

    def get_by_deposit_hash(self, deposit_tx_hash: str) -> Optional[BridgeTransaction]:
        stmt = select(BridgeTransaction).where(BridgeTransaction.deposit_tx_hash == deposit_tx_hash)
        return self.db.scalar(stmt)

    def list_transactions(self, status: str | None = None, limit: int = 50) -> List[BridgeTransaction]:
        stmt = select(BridgeTransaction)
        if status:
            stmt = stmt.where(BridgeTransaction.status == status)
        stmt = stmt.order_by(BridgeTransaction.created_at.desc()).limit(limit)
        return list(self.db.scalars(stmt).all())

    def history(self, transaction_id: str) -> List[BridgeStatusChange]:
        stmt = (
            select(BridgeStatusChange)
            .where(BridgeStatusChange.transaction_id == transaction_id)
            .order_by(BridgeStatusChange.id.asc())
        )
        return list(self.db.scalars(stmt).all())

    def create_confirmed(
        self,
        deposit_tx_hash: str,
        client_wallet_address: str,
        stable_amount: int,
        exchange_rate: int,
        fiat_amount: int,
    ) -> BridgeTransaction:
        """
        Insert the record in DEPOSIT_CONFIRMED.

        Raises DuplicateDepositError when another delivery of the same deposit
        won the unique-index race.
        """
        now = datetime.utcnow()
        tx = BridgeTransaction(
            deposit_tx_hash=deposit_tx_hash,
            client_wallet_address=client_wallet_address,
            stable_amount=stable_amount,
            exchange_rate=exchange_rate,
            fiat_amount=fiat_amount,
            status=BridgeStatus.DEPOSIT_CONFIRMED.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(tx)
        try:
            self.db.flush()  # tx.id
            self.db.add(
                BridgeStatusChange(
                    transaction_id=tx.id,
                    from_status=None,
                    to_status=BridgeStatus.DEPOSIT_CONFIRMED.value,
                    step="quote",
                    detail=f"rate={exchange_rate} fiat={fiat_amount}",
                    changed_at=now,
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateDepositError(deposit_tx_hash)

        self.db.refresh(tx)
        return tx

    def advance(
        self,
        tx: BridgeTransaction,
        target: BridgeStatus,
        step: str,
        detail: str | None = None,
        **fields,
    ) -> BridgeTransaction:
        """
        Move tx to target in a single commit, together with any fields set by
        the step and one transition-log row.

        The UPDATE is conditional on the status we read, so a concurrent
        writer (e.g. the provider callback) cannot be overwritten.
        """
        current = tx.status
        if not can_transition(current, target.value):
            raise InvalidTransitionError(tx.id, current, target.value)

        now = datetime.utcnow()
        result = self.db.execute(
            update(BridgeTransaction)
            .where(BridgeTransaction.id == tx.id, BridgeTransaction.status == current)
            .values(status=target.value, updated_at=now, **fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self.db.refresh(tx)
            raise InvalidTransitionError(tx.id, tx.status, target.value)

        self.db.add(
            BridgeStatusChange(
                transaction_id=tx.id,
                from_status=current,
                to_status=target.value,
                step=step,
                detail=detail,
                changed_at=now,
            )
        )
        self.db.commit()
        self.db.refresh(tx)

        logger.info("Transaction %s: %s -> %s (%s)", tx.id, current, target.value, step)
        return tx

    def mark_failed(self, tx: BridgeTransaction, step: str, reason: str) -> BridgeTransaction:
        return self.advance(tx, BridgeStatus.FAILED, step=step, detail=reason, failure_reason=reason)
