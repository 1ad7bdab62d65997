from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.errors import missing_parameters
from app.services.hyperliquid_service import HyperliquidService, get_hyperliquid_service
from app.services.price_service import DashboardService, get_dashboard_service
from app.services.wallet_service import WalletService, get_wallet_service

router = APIRouter()


def _require_address(address: Optional[str]) -> str:
    address = (address or "").strip()
    if not address:
        raise missing_parameters("Missing address")
    return address


@router.get("/wallet/portfolio")
async def get_wallet_portfolio(
    address: Optional[str] = Query(None, description="Wallet address"),
    chain: Optional[str] = Query(None, description="Chain (ETH, BASE, SOL, BTC, ...)"),
    type: Optional[str] = Query(None, description="Wallet type hint (evm, solana, ...)"),
    wallet: WalletService = Depends(get_wallet_service),
):
    """Token balances of a wallet"""
    return await wallet.get_portfolio(_require_address(address), chain, type)


@router.get("/wallet/history")
async def get_wallet_history(
    address: Optional[str] = Query(None, description="Wallet address"),
    chain: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    wallet: WalletService = Depends(get_wallet_service),
):
    """Recent transactions of a wallet"""
    return await wallet.get_history(_require_address(address), chain, type)


@router.get("/hyperliquid/positions")
async def get_hyperliquid_positions(
    user: Optional[str] = Query(None, description="Hyperliquid wallet address"),
    hyperliquid: HyperliquidService = Depends(get_hyperliquid_service),
):
    """Open perp positions of a Hyperliquid wallet"""
    return {"positions": await hyperliquid.fetch_positions(_require_address(user))}


@router.get("/hyperliquid/fills")
async def get_hyperliquid_fills(
    user: Optional[str] = Query(None, description="Hyperliquid wallet address"),
    hyperliquid: HyperliquidService = Depends(get_hyperliquid_service),
):
    """Recent fills of a Hyperliquid wallet, mapped to journal trades"""
    return {"trades": await hyperliquid.fetch_user_fills(_require_address(user))}


@router.get("/dashboard/summary")
async def get_dashboard_summary(
    address: Optional[str] = Query(None),
    chain: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    """Headline numbers for the dashboard"""
    return await dashboard.summary(address, chain, type)
