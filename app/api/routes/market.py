from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.core.errors import missing_parameters
from app.services.market_service import MarketService, get_market_service
from app.services.price_service import PriceService, get_price_service

router = APIRouter()


@router.get("/screener/ccxt-data")
def get_screener_data(
    refresh: bool = Query(False, description="Bypass the 30s cache"),
    market: MarketService = Depends(get_market_service),
):
    """Perpetual tickers with funding rates from Binance, Bybit and Hyperliquid"""
    try:
        return market.get_screener_data(use_cache=not refresh)
    except Exception as e:
        logger.error(f"[Screener] error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load screener data: {str(e)}")


@router.get("/prices")
async def get_prices(
    symbols: str = Query("", description="Comma separated symbols, e.g. BTC,ETH"),
    prices: PriceService = Depends(get_price_service),
):
    """USD spot prices and 24h change"""
    wanted = [s.strip() for s in symbols.split(",") if s.strip()]
    if not wanted:
        raise missing_parameters("Missing symbols")
    return {"prices": await prices.get_simple_prices(wanted)}
