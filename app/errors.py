# app/errors.py


class TradingError(Exception):
    """Base class for portfolio and ledger errors."""


class ValidationError(TradingError):
    """Bad or missing trade input. Raised before any store is touched."""


class MissingFieldsError(ValidationError):
    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__("Missing required fields: symbol, type, quantity, price")


class InvalidSideError(ValidationError):
    def __init__(self, value=None):
        self.value = value
        super().__init__("Type must be BUY or SELL")


class StoreUnavailable(TradingError):
    """The backing store could not be reached in time."""


class PersistenceError(TradingError):
    """
    A store write failed.

    `stage` is "ledger" when nothing was recorded, or "position" when the
    trade is already in the ledger but the position update did not land.
    """

    def __init__(self, message: str, stage: str = "ledger", trade=None):
        super().__init__(message)
        self.stage = stage
        self.trade = trade

    @property
    def trade_recorded(self) -> bool:
        return self.stage == "position"
