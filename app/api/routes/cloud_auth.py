from fastapi import APIRouter, Depends, Request

from app.schemas.cloud import CodeExchangeRequest, RefreshTokenRequest
from app.services.oauth_service import OAuthService, get_drive_oauth_service, get_dropbox_oauth_service

router = APIRouter()


def _origin(request: Request):
    return request.headers.get("origin")


@router.post("/drive/exchange")
async def drive_exchange(
    body: CodeExchangeRequest,
    request: Request,
    oauth: OAuthService = Depends(get_drive_oauth_service),
):
    """Exchange a Google authorization code for tokens"""
    return await oauth.exchange_code(body.code, _origin(request))


@router.post("/drive/refresh")
async def drive_refresh(body: RefreshTokenRequest, oauth: OAuthService = Depends(get_drive_oauth_service)):
    """Refresh a Google Drive access token"""
    return await oauth.refresh(body.refresh_token)


@router.post("/dropbox/exchange")
async def dropbox_exchange(
    body: CodeExchangeRequest,
    request: Request,
    oauth: OAuthService = Depends(get_dropbox_oauth_service),
):
    """Exchange a Dropbox authorization code for tokens"""
    return await oauth.exchange_code(body.code, _origin(request))


@router.post("/dropbox/refresh")
async def dropbox_refresh(body: RefreshTokenRequest, oauth: OAuthService = Depends(get_dropbox_oauth_service)):
    """Refresh a Dropbox access token"""
    return await oauth.refresh(body.refresh_token)
