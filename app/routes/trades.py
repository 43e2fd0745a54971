# app/routes/trades.py

import json
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from app import schemas
from app.dependencies import get_service
from app.errors import PersistenceError, StoreUnavailable, ValidationError
from app.logic import PortfolioService
from logger import logger

router = APIRouter(
    prefix="/trades",
    tags=["trades"]
)

@router.post(
    "",
    status_code=201,
    response_model=schemas.TradeCreatedResponse,
    responses={400: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}}
)
async def add_trade(request: Request, service: PortfolioService = Depends(get_service)):
    """
    Records a new trade and applies it to the portfolio.
    """
    raw_body = await request.body()
    logger.info(f"Raw Body Received: {raw_body!r}")

    try:
        data = json.loads(raw_body.decode("utf-8").replace("\x00", "").strip() or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"JSON Decode Error: {str(e)}")
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        trade = await run_in_threadpool(
            service.record_trade,
            data.get("symbol"),
            data.get("type"),
            data.get("quantity"),
            data.get("price"),
        )
    except ValidationError as e:
        logger.warning(f"Rejected trade: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        if e.trade_recorded:
            logger.error(f"Trade {e.trade.id} is in the ledger but its position was not updated.")
        raise HTTPException(status_code=500, detail="Failed to record trade")

    return {"message": "Trade recorded successfully", "trade": trade}

@router.get("", response_model=schemas.TradesResponse, responses={500: {"model": schemas.ErrorResponse}})
def get_trades(service: PortfolioService = Depends(get_service)):
    """
    Retrieves all trades, most recent first.
    """
    try:
        logger.info("Fetching all trade records.")
        return {"trades": service.list_trades()}
    except (StoreUnavailable, PersistenceError) as e:
        logger.error(f"Error retrieving trades: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch trades")
