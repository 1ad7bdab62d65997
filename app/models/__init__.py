"""
Models Module

This module contains all SQLAlchemy database models.
"""

from .journal_trade import JournalTrade
from .connection import PortfolioConnection
from .alert import AlertRule, AlertSettings
from .app_setting import AppSetting

__all__ = [
    "JournalTrade",
    "PortfolioConnection",
    "AlertRule",
    "AlertSettings",
    "AppSetting",
]
