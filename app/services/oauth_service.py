"""
Server-side OAuth token exchange for the cloud backup providers.

Client secrets never reach the browser: the frontend posts the
authorization code or refresh token here and gets access tokens back.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode, missing_parameters, not_configured
from app.services.http_client import managed_client

GOOGLE_DRIVE = "drive"
DROPBOX = "dropbox"

_PROVIDER_NAMES = {GOOGLE_DRIVE: "Google Drive", DROPBOX: "Dropbox"}


class OAuthService:
    """Authorization-code and refresh-token grants for Google Drive and Dropbox"""

    def __init__(self, provider: str, http_client: Optional[httpx.AsyncClient] = None):
        if provider not in _PROVIDER_NAMES:
            raise ValueError(f"Unknown OAuth provider: {provider}")
        self.provider = provider
        self.http_client = http_client

    def _credentials(self):
        if self.provider == GOOGLE_DRIVE:
            client_id, client_secret = settings.google_drive_client_id, settings.google_drive_client_secret
        else:
            client_id, client_secret = settings.dropbox_app_key, settings.dropbox_app_secret
        if not client_id or not client_secret:
            raise not_configured(f"{_PROVIDER_NAMES[self.provider]} OAuth not configured")
        return client_id, client_secret

    def redirect_uri(self, origin: Optional[str]) -> str:
        if settings.app_url:
            return settings.app_url
        return f"{(origin or settings.api_base_url).rstrip('/')}/auth/{self.provider}/callback"

    async def _token_request(self, form: Dict[str, str], failure: str) -> Dict[str, Any]:
        client_id, client_secret = self._credentials()
        if self.provider == GOOGLE_DRIVE:
            url = settings.google_token_url
            form = {**form, "client_id": client_id, "client_secret": client_secret}
            auth = None
        else:
            # Dropbox authenticates the app with HTTP Basic
            url = settings.dropbox_token_url
            auth = (client_id, client_secret)

        async with managed_client(self.http_client) as client:
            response = await client.post(url, data=form, auth=auth)

        if response.status_code >= 400:
            logger.warning(f"{_PROVIDER_NAMES[self.provider]} token endpoint returned HTTP {response.status_code}")
            raise ApiError(failure, ApiErrorCode.UPSTREAM_FAILURE, extra={"details": response.text})
        return response.json()

    async def exchange_code(self, code: Optional[str], origin: Optional[str] = None) -> Dict[str, Any]:
        self._credentials()
        if not code or not isinstance(code, str):
            raise missing_parameters("Missing code")
        tokens = await self._token_request(
            {"code": code, "grant_type": "authorization_code", "redirect_uri": self.redirect_uri(origin)},
            "Token exchange failed",
        )
        return {
            "access_token": tokens.get("access_token"),
            "refresh_token": tokens.get("refresh_token"),
            "expires_in": tokens.get("expires_in"),
        }

    async def refresh(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        self._credentials()
        if not refresh_token or not isinstance(refresh_token, str):
            raise missing_parameters("Missing refresh_token")
        tokens = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "Refresh failed",
        )
        return {"access_token": tokens.get("access_token"), "expires_in": tokens.get("expires_in")}


def get_drive_oauth_service() -> OAuthService:
    return OAuthService(GOOGLE_DRIVE)


def get_dropbox_oauth_service() -> OAuthService:
    return OAuthService(DROPBOX)
