#!/usr/bin/env python3
"""
Seed the journal with a week of demo trades so the stats pages have data
"""
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger

from app import models  # noqa: F401
from app.core.database import Base, SessionLocal, engine
from app.core.logging import setup_logging
from app.services.journal_service import JournalService
from app.services.journal_stats import STRATEGY_TAG_IDS
from app.services.normalization import now_ms

DAY_MS = 24 * 60 * 60 * 1000
SYMBOLS = {"BTC": 65000.0, "ETH": 3200.0, "SOL": 150.0}
STRATEGIES = sorted(STRATEGY_TAG_IDS)


def demo_trades(count: int = 40, seed: int = 7):
    rng = random.Random(seed)
    start = now_ms() - 7 * DAY_MS
    trades = []
    for i in range(count):
        symbol = rng.choice(list(SYMBOLS))
        price = SYMBOLS[symbol] * rng.uniform(0.95, 1.05)
        trades.append({
            "id": f"demo-{i}",
            "symbol": f"{symbol}/USDT:USDT",
            "side": rng.choice(["buy", "sell"]),
            "price": round(price, 2),
            "amount": round(rng.uniform(0.01, 2.0), 4),
            "timestamp": start + rng.randint(0, 7 * DAY_MS),
            "pnl": round(rng.gauss(15, 60), 2),
            "fee": round(price * 0.0004, 4),
            "exchange": "demo",
            "strategyTag": rng.choice(STRATEGIES),
            "executionQuality": rng.randint(1, 5),
        })
    return trades


if __name__ == "__main__":
    setup_logging()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        result = JournalService(db).upsert_trades(demo_trades())
        stats = JournalService(db).stats(exchange="demo")["stats"]
    finally:
        db.close()

    logger.info(f"Seeded demo journal: {result['created']} created, {result['updated']} updated")
    logger.info(f"Demo win rate {stats['winRate']:.0%} over {stats['totalTrades']} trades")
