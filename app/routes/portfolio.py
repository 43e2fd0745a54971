# app/routes/portfolio.py

from fastapi import APIRouter, Depends, HTTPException
from app import schemas
from app.dependencies import get_service
from app.errors import PersistenceError, StoreUnavailable
from app.logic import PortfolioService
from logger import logger

router = APIRouter(
    prefix="/portfolio",
    tags=["portfolio"]
)

@router.get("", response_model=schemas.PortfolioResponse, responses={500: {"model": schemas.ErrorResponse}})
def get_portfolio(service: PortfolioService = Depends(get_service)):
    """
    Retrieves every open position and their total value at average cost.
    """
    try:
        logger.info("Fetching portfolio.")
        positions, total_value = service.list_portfolio()
        return {"portfolio": positions, "totalValue": total_value}
    except (StoreUnavailable, PersistenceError) as e:
        logger.error(f"Error retrieving portfolio: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch portfolio")
