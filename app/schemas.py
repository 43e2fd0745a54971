# app/schemas.py

import math
import re
from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from app.errors import InvalidSideError, MissingFieldsError, ValidationError

REQUIRED_FIELDS = ("symbol", "type", "quantity", "price")
# Largest share count that converts to float exactly
MAX_QUANTITY = 2 ** 53
# Tickers, share classes (BRK.B, BRK/B), indices (^GSPC) and futures (ES=F)
SYMBOL_PATTERN = re.compile(r"^[A-Z0-9.\-/^=_]{1,32}$")


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeRequest(BaseModel):
    """Trade input that has passed every field and type check."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    side: Side
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    price: float = Field(gt=0)

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("symbol must be a string")
        value = value.strip().upper()
        if not SYMBOL_PATTERN.fullmatch(value):
            raise ValueError("symbol must be 1-32 letters, digits or . - / ^ = _")
        return value

    @field_validator("quantity", "price", mode="before")
    @classmethod
    def reject_booleans(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("must be a number")
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator("price")
    @classmethod
    def check_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be finite")
        return value

    @model_validator(mode="after")
    def check_notional(self) -> "TradeRequest":
        if not math.isfinite(float(self.quantity) * self.price):
            raise ValueError("quantity * price is too large")
        return self

    @classmethod
    def parse(cls, symbol: Any, side: Any, quantity: Any, price: Any) -> "TradeRequest":
        """
        Validates raw trade fields.

        Args:
            symbol: Ticker, any case.
            side: "BUY" or "SELL", any case.
            quantity: Positive integer or its string form.
            price: Positive finite number or its string form.

        Returns:
            TradeRequest: Normalized trade input.

        Raises:
            MissingFieldsError: A field is absent or empty.
            InvalidSideError: side is not BUY or SELL.
            ValidationError: Any other malformed value.
        """
        raw = {"symbol": symbol, "type": side, "quantity": quantity, "price": price}
        missing = [name for name in REQUIRED_FIELDS if _is_blank(raw[name])]
        if missing:
            raise MissingFieldsError(missing)

        if not isinstance(side, str) or side.strip().upper() not in Side.__members__:
            raise InvalidSideError(side)

        try:
            return cls(symbol=symbol, side=side.strip().upper(), quantity=quantity, price=price)
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = error["loc"][0] if error.get("loc") else "trade"
            raise ValidationError(f"Invalid {field}: {error['msg']}") from None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


class Trade(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    id: str
    symbol: str
    side: Side
    quantity: int
    price: float
    date: str  # UTC calendar date, YYYY-MM-DD


class Position(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, allow_inf_nan=False)

    symbol: str
    quantity: int = Field(ge=0)
    avg_cost: float = Field(ge=0, alias="avgCost")

    @property
    def market_value(self) -> float:
        return self.quantity * self.avg_cost


class RootResponse(BaseModel):
    message: str
    timestamp: str


class HealthResponse(BaseModel):
    status: str
    store: str


class PortfolioResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    portfolio: List[Position]
    total_value: float = Field(alias="totalValue")


class TradesResponse(BaseModel):
    trades: List[Trade]


class TradeCreatedResponse(BaseModel):
    message: str
    trade: Trade

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Trade recorded successfully",
                "trade": {
                    "id": "5f0c1c2e9b7e4a6f8d3b2a1c0e9f8d7a",
                    "symbol": "AAPL",
                    "side": "BUY",
                    "quantity": 10,
                    "price": 150.0,
                    "date": "2025-07-20"
                }
            }
        }
    )


class ErrorResponse(BaseModel):
    error: str
