import logging

from fastapi import APIRouter, Depends, HTTPException

from bridge.core.deps import get_orchestrator, require_ingress_token
from bridge.schemas.deposit import DepositAck, DepositWebhookIn
from bridge.services.settlement import SettlementOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/internal/deposit-webhook",
    response_model=DepositAck,
    dependencies=[Depends(require_ingress_token)],
)
def deposit_webhook(
    payload: DepositWebhookIn,
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
):
    logger.info(
        "Webhook received: deposit %s from %s in tx %s",
        payload.amount, payload.from_address, payload.tx_hash,
    )
    try:
        result = orchestrator.process_deposit(payload.tx_hash, payload.from_address, payload.atomic_amount)
    except Exception as e:
        logger.exception("Webhook error for %s", payload.tx_hash)
        raise HTTPException(status_code=500, detail={"error": "Internal Server Error", "message": str(e)})

    if not result.ok:
        failure = result.failure
        raise HTTPException(
            status_code=500,
            detail={
                "error": failure.reason.value,
                "stage": failure.stage,
                "message": failure.message,
                "transaction_id": failure.transaction_id,
            },
        )

    tx = result.transaction
    return DepositAck(
        success=True,
        message="Deposit already processed" if result.duplicate else "Payout initiated",
        transaction_id=tx.id if tx is not None else None,
        status=tx.status if tx is not None else None,
        duplicate=result.duplicate,
    )
