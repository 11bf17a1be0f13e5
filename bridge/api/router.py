from fastapi import APIRouter
from bridge.api.v1.health import router as health_router
from bridge.api.v1.deposits import router as deposits_router
from bridge.api.v1.transactions import router as transactions_router
from bridge.api.v1.payouts import router as payouts_router
from bridge.api.v1.quotes import router as quotes_router


api_router = APIRouter()
api_router.include_router(health_router, prefix="/v1", tags=["health"])
api_router.include_router(deposits_router, prefix="/v1", tags=["deposits"])
api_router.include_router(transactions_router, prefix="/v1", tags=["transactions"])
api_router.include_router(payouts_router, prefix="/v1", tags=["payouts"])
api_router.include_router(quotes_router, prefix="/v1", tags=["quotes"])
