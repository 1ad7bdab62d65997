"""
API Routes Module

This module contains all API route handlers organized by domain.
"""

from . import accounting
from . import alerts
from . import app_settings
from . import backup
from . import binance
from . import cex
from . import cloud_auth
from . import connections
from . import health
from . import journal
from . import market
from . import proxy
from . import wallet

__all__ = [
    "accounting",
    "alerts",
    "app_settings",
    "backup",
    "binance",
    "cex",
    "cloud_auth",
    "connections",
    "health",
    "journal",
    "market",
    "proxy",
    "wallet",
]
