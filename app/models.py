# app/models.py

from sqlalchemy import BigInteger, Column, Integer, String, Float
from app.database import Base

class TradeRecord(Base):
    __tablename__ = "trades"

    seq = Column(Integer, primary_key=True, autoincrement=True)  # Insertion order
    id = Column(String(64), unique=True, index=True, nullable=False)
    symbol = Column(String(32), index=True, nullable=False)
    side = Column(String(4), nullable=False)  # "BUY" or "SELL"
    quantity = Column(BigInteger, nullable=False)
    price = Column(Float, nullable=False)
    date = Column(String(10), index=True, nullable=False)  # YYYY-MM-DD, UTC

class PositionRecord(Base):
    __tablename__ = "positions"

    symbol = Column(String(32), primary_key=True)
    quantity = Column(BigInteger, nullable=False)
    avg_cost = Column(Float, nullable=False)
