"""
Schemas Module

This module contains all Pydantic schemas for request validation.
"""

from .base import CamelModel, to_wire

# CEX schemas
from .cex import (
    CexCredentials,
    BalanceRequest,
    PlaceOrderRequest,
    RegisterConnectionRequest,
    ListenKeyRequest,
)

# Journal schemas
from .journal import (
    JournalTradeIn,
    JournalBatchIn,
    JournalAnnotation,
    JournalSyncKeys,
    JournalSyncRequest,
)

# Accounting schemas
from .accounting import CostBasisRequest

# Alert schemas
from .alerts import AlertPayload, AlertCondition, AlertRuleIn, AlertSettingsIn

# Cloud schemas
from .cloud import CodeExchangeRequest, RefreshTokenRequest, ProxyRequest, BackupUploadRequest

__all__ = [
    "CamelModel",

    # CEX
    "CexCredentials",
    "BalanceRequest",
    "PlaceOrderRequest",
    "RegisterConnectionRequest",
    "ListenKeyRequest",

    # Journal
    "JournalTradeIn",
    "JournalBatchIn",
    "JournalAnnotation",
    "JournalSyncKeys",
    "JournalSyncRequest",

    # Accounting
    "CostBasisRequest",

    # Alerts
    "AlertPayload",
    "AlertCondition",
    "AlertRuleIn",
    "AlertSettingsIn",
    "to_wire",

    # Cloud
    "CodeExchangeRequest",
    "RefreshTokenRequest",
    "ProxyRequest",
    "BackupUploadRequest",
]
