from typing import Any, Dict, Optional

from pydantic import BaseModel

from .base import CamelModel


class CodeExchangeRequest(BaseModel):
    code: Optional[str] = None


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class ProxyRequest(CamelModel):
    url: Optional[str] = None
    method: str = "GET"
    headers: Dict[str, str] = {}
    body: Optional[Any] = None


class BackupUploadRequest(CamelModel):
    filename: Optional[str] = None
    data: Optional[Any] = None
