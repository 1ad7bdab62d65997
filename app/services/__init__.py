"""
Services Module

This module contains all business logic services for the portfolio tracker and journal.
"""

# Exchanges
from .bybit_client import BybitClient
from .cex_service import CexService, get_cex_service
from .connection_service import ConnectionService, get_connection_service
from .binance_service import BinanceService, get_binance_service
from .hyperliquid_service import HyperliquidService, get_hyperliquid_service

# Journal & Accounting
from .journal_service import JournalService, get_journal_service
from .journal_sync_service import JournalSyncService, get_journal_sync_service
from .accounting_service import cost_basis_report

# Wallets & Market Data
from .wallet_service import WalletService, get_wallet_service
from .price_service import PriceService, DashboardService
from .market_service import MarketService, get_market_service

# Alerts
from .alert_service import AlertService, get_alert_service
from .alert_rule_service import AlertRuleService, get_alert_rule_service
from .alert_checker import AlertChecker, alert_checker
from .scheduler_service import SchedulerService, scheduler_service

# Cloud
from .backup_service import BackupService, get_backup_service
from .oauth_service import OAuthService
from .proxy_service import ProxyService, get_proxy_service

__all__ = [
    # Exchanges
    "BybitClient",
    "CexService",
    "get_cex_service",
    "ConnectionService",
    "get_connection_service",
    "BinanceService",
    "get_binance_service",
    "HyperliquidService",
    "get_hyperliquid_service",

    # Journal & Accounting
    "JournalService",
    "get_journal_service",
    "JournalSyncService",
    "get_journal_sync_service",
    "cost_basis_report",

    # Wallets & Market Data
    "WalletService",
    "get_wallet_service",
    "PriceService",
    "DashboardService",
    "MarketService",
    "get_market_service",

    # Alerts (checker and scheduler are singletons)
    "AlertService",
    "get_alert_service",
    "AlertRuleService",
    "get_alert_rule_service",
    "AlertChecker",
    "alert_checker",
    "SchedulerService",
    "scheduler_service",

    # Cloud
    "BackupService",
    "get_backup_service",
    "OAuthService",
    "ProxyService",
    "get_proxy_service",
]
