from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from bridge.core.deps import get_db
from bridge.models.bridge_transaction import BridgeStatus
from bridge.schemas.transaction import StatusChangeOut, TransactionDetailOut, TransactionOut
from bridge.services.ledger import LedgerStore

router = APIRouter()


@router.get("/transactions", response_model=list[TransactionOut])
def get_transactions(
    db: Session = Depends(get_db),
    status: str | None = None,
    limit: int = Query(50, ge=1, le=500),
):
    if status:
        status = status.upper()
        if status not in BridgeStatus.__members__:
            raise HTTPException(status_code=400, detail=f"Unknown status {status}")
    return LedgerStore(db).list_transactions(status=status, limit=limit)


@router.get("/transactions/{transaction_id}", response_model=TransactionDetailOut)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    ledger = LedgerStore(db)
    tx = ledger.get(transaction_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found")

    history = [StatusChangeOut.model_validate(change) for change in ledger.history(transaction_id)]
    return TransactionDetailOut(**TransactionOut.model_validate(tx).model_dump(), history=history)
