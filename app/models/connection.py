from sqlalchemy import Column, String, DateTime, Boolean, Text
from sqlalchemy.sql import func
from app.core.database import Base

class PortfolioConnection(Base):
    """Exchange API credentials registered for server-side order placement"""
    __tablename__ = "portfolio_connections"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=True)
    exchange_id = Column(String, nullable=False)  # ccxt id: binance, bybit, okx

    # Encrypted with app.core.security.encrypt_data
    api_key = Column(Text, nullable=False)
    secret = Column(Text, nullable=False)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
