import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Path
from sqlalchemy.orm import Session

from bridge.core.config import settings
from bridge.core.deps import get_db, get_publisher
from bridge.core.errors import InvalidTransitionError, UnsupportedChannelError
from bridge.models.bridge_transaction import TERMINAL_STATUSES, BridgeStatus
from bridge.schemas.payout import (
    BankChannelOut,
    DestinationIn,
    DestinationOut,
    PayoutCallbackAck,
    PayoutCallbackIn,
)
from bridge.services.destinations import DestinationService
from bridge.services.event_publisher import EventPublisher
from bridge.services.ledger import LedgerStore
from bridge.services.payout import CHANNEL_CODES, EWALLET_CODES

logger = logging.getLogger(__name__)

router = APIRouter()

# provider payout status -> ledger status
CALLBACK_STATUSES = {
    "SUCCEEDED": BridgeStatus.COMPLETED,
    "FAILED": BridgeStatus.FAILED,
    "CANCELLED": BridgeStatus.FAILED,
    "REVERSED": BridgeStatus.FAILED,
}


@router.post("/payouts/callback", response_model=PayoutCallbackAck)
def payout_callback(
    payload: PayoutCallbackIn,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    x_callback_token: str | None = Header(default=None, alias="x-callback-token"),
):
    if not settings.payout_callback_token:
        raise HTTPException(status_code=503, detail="Payout callbacks are not configured")
    if not hmac.compare_digest(x_callback_token or "", settings.payout_callback_token):
        raise HTTPException(status_code=401, detail="Invalid callback token")

    ledger = LedgerStore(db)
    tx = ledger.get(payload.external_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found")
    if tx.payout_id and tx.payout_id != payload.id:
        raise HTTPException(status_code=409, detail="Payout id does not match transaction")

    target = CALLBACK_STATUSES.get(payload.status.upper())
    if target is None or tx.status in {s.value for s in TERMINAL_STATUSES}:
        # intermediate provider status, or a repeated callback
        return PayoutCallbackAck(transaction_id=tx.id, status=tx.status, changed=False)
    if tx.status != BridgeStatus.PAYOUT_INITIATED.value:
        raise HTTPException(status_code=409, detail=f"Transaction is not awaiting payout (status={tx.status})")

    fields = {}
    if target is BridgeStatus.FAILED:
        fields["failure_reason"] = f"PAYOUT_{payload.status.upper()}: {payload.failure_code or 'no failure code'}"
    try:
        tx = ledger.advance(tx, target, step="payout-callback", detail=f"provider status {payload.status}", **fields)
    except InvalidTransitionError:
        db.refresh(tx)
        return PayoutCallbackAck(transaction_id=tx.id, status=tx.status, changed=False)

    if target is BridgeStatus.FAILED:
        logger.error("Payout %s for transaction %s ended %s; needs manual reconciliation", payload.id, tx.id, payload.status)
    publisher.publish_status_changed(tx, "payout-callback")
    return PayoutCallbackAck(transaction_id=tx.id, status=tx.status, changed=True)


@router.get("/banks", response_model=list[BankChannelOut])
def get_banks():
    return [
        BankChannelOut(code=code, channel_code=channel, kind="EWALLET" if code in EWALLET_CODES else "BANK")
        for code, channel in CHANNEL_CODES.items()
    ]


@router.put("/destinations/{wallet_address}", response_model=DestinationOut)
def put_destination(
    payload: DestinationIn,
    wallet_address: str = Path(..., pattern=r"^0x[0-9a-fA-F]{40}$"),
    db: Session = Depends(get_db),
):
    try:
        return DestinationService(db).upsert(
            wallet_address, payload.bank_code, payload.account_number, payload.account_name
        )
    except UnsupportedChannelError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/destinations/{wallet_address}", response_model=DestinationOut)
def get_destination(
    wallet_address: str = Path(..., pattern=r"^0x[0-9a-fA-F]{40}$"),
    db: Session = Depends(get_db),
):
    row = DestinationService(db).get(wallet_address)
    if not row:
        raise HTTPException(status_code=404, detail="No destination registered for this wallet")
    return row
