from typing import Any, Optional

from .base import CamelModel


class CexCredentials(CamelModel):
    exchange_id: Optional[str] = None
    exchange: Optional[str] = None  # accepted as an alias of exchangeId
    api_key: Optional[str] = None
    secret: Optional[str] = None

    @property
    def resolved_exchange(self) -> Optional[str]:
        return self.exchange or self.exchange_id


class BalanceRequest(CexCredentials):
    account_type: Optional[str] = None


class PlaceOrderRequest(CexCredentials):
    connection_id: Optional[str] = None
    symbol: Optional[str] = None
    side: Optional[str] = None
    type: Optional[str] = None
    amount: Optional[Any] = None  # number or numeric string
    price: Optional[Any] = None


class RegisterConnectionRequest(CexCredentials):
    connection_id: Optional[str] = None
    name: Optional[str] = None


class ListenKeyRequest(CamelModel):
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    listen_key: Optional[str] = None
    market_type: Optional[str] = None
