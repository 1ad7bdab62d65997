from sqlalchemy import Column, Integer, String, DateTime, Float, BigInteger, JSON, Text
from sqlalchemy.sql import func
from app.core.database import Base

class JournalTrade(Base):
    __tablename__ = "journal_trades"

    # Exchange-provided id (e.g. ccxt trade id, Hyperliquid fill hash)
    id = Column(String, primary_key=True, index=True)

    # Instrument details
    symbol = Column(String, nullable=False, index=True)  # normalized base asset: BTC, ETH, ...
    raw_symbol = Column(String, nullable=True)  # as reported: BTC/USDT:USDT, @107, ...
    exchange = Column(String, nullable=True, index=True)
    instrument_type = Column(String, nullable=True)  # future, crypto
    market_type = Column(String, nullable=True)  # perp, future, spot

    # Trade details
    side = Column(String, nullable=False)  # buy, sell
    price = Column(Float, nullable=False, default=0.0)
    amount = Column(Float, nullable=False, default=0.0)
    timestamp = Column(BigInteger, nullable=False, index=True)  # epoch ms
    close_time = Column(BigInteger, nullable=True)  # epoch ms, set when the position was closed
    status = Column(String, nullable=False, default="closed")  # open, closed

    # Results
    pnl = Column(Float, default=0.0)
    fee = Column(Float, default=0.0)
    fee_currency = Column(String, nullable=True)
    source_type = Column(String, nullable=True)  # cex, dex, manual

    # Journal annotations
    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list)
    screenshots = Column(JSON, default=list)
    strategy_tag = Column(String, nullable=True)
    execution_quality = Column(Integer, nullable=True)  # 1..5
    mistake_tags = Column(JSON, default=list)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "symbol": self.symbol,
            "rawSymbol": self.raw_symbol,
            "exchange": self.exchange,
            "instrumentType": self.instrument_type,
            "marketType": self.market_type,
            "side": self.side,
            "price": self.price,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "closeTime": self.close_time,
            "status": self.status,
            "pnl": self.pnl or 0.0,
            "fee": self.fee or 0.0,
            "feeCurrency": self.fee_currency,
            "sourceType": self.source_type,
            "notes": self.notes,
            "tags": self.tags or [],
            "screenshots": self.screenshots or [],
            "strategyTag": self.strategy_tag,
            "executionQuality": self.execution_quality,
            "mistakeTags": self.mistake_tags or [],
        }
