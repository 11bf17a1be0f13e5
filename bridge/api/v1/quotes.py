from fastapi import APIRouter, Depends, HTTPException, Query

from bridge.core.config import settings
from bridge.core.deps import get_rate_oracle
from bridge.core.errors import NoLiquidityError, UpstreamError
from bridge.schemas.deposit import MAX_ATOMIC_AMOUNT
from bridge.schemas.quote import QuoteOut
from bridge.services.fees import floor_rate, quote_payout
from bridge.services.rate_oracle import IndodaxRateOracle

router = APIRouter()


@router.get("/quote", response_model=QuoteOut)
def get_quote(
    amount: int = Query(..., gt=0, le=MAX_ATOMIC_AMOUNT, description="Stablecoin amount in atomic units"),
    oracle: IndodaxRateOracle = Depends(get_rate_oracle),
):
    try:
        price = oracle.best_bid(settings.exchange_pair)
    except NoLiquidityError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))

    quote = quote_payout(amount, floor_rate(price), settings.stablecoin_decimals)
    return QuoteOut(
        pair=settings.exchange_pair,
        stable_amount=quote.stable_amount,
        rate=quote.rate,
        gross_fiat=quote.gross_fiat,
        fee=quote.fee,
        net_fiat=quote.net_fiat,
    )
