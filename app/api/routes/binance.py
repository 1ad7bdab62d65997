from fastapi import APIRouter, Depends

from app.schemas.cex import ListenKeyRequest
from app.services.binance_service import BinanceService, get_binance_service

router = APIRouter()

FUTURES = "futures"


@router.post("/listen-key")
async def create_listen_key(body: ListenKeyRequest, binance: BinanceService = Depends(get_binance_service)):
    """Create a user data stream listen key"""
    return await binance.create_listen_key(body.api_key, body.api_secret, body.market_type)


@router.put("/listen-key")
async def keep_alive_listen_key(body: ListenKeyRequest, binance: BinanceService = Depends(get_binance_service)):
    """Extend the validity of a listen key"""
    return await binance.keep_alive_listen_key(body.api_key, body.listen_key, body.market_type)


@router.post("/listen-key-futures")
async def create_futures_listen_key(body: ListenKeyRequest, binance: BinanceService = Depends(get_binance_service)):
    """Create a USDⓈ-M futures listen key"""
    return await binance.create_listen_key(body.api_key, body.api_secret, FUTURES)


@router.put("/listen-key-futures")
async def keep_alive_futures_listen_key(body: ListenKeyRequest,
                                        binance: BinanceService = Depends(get_binance_service)):
    """Keep a futures listen key alive"""
    return await binance.keep_alive_listen_key(body.api_key, body.listen_key, FUTURES)
