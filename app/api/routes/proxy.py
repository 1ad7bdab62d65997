from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from app.schemas.cloud import ProxyRequest
from app.services.proxy_service import ProxyService, get_proxy_service

router = APIRouter()


@router.post("")
async def proxy_request(body: ProxyRequest, proxy: ProxyService = Depends(get_proxy_service)):
    """Forward a request and relay the upstream status, body and content type"""
    upstream = await proxy.forward(body.url, body.method, body.headers, body.body)
    return Response(
        content=upstream.text,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )


@router.get("/ping")
async def ping(
    url: Optional[str] = Query(None, description="URL to ping"),
    proxy: ProxyService = Depends(get_proxy_service),
):
    """Check that a URL answers"""
    return await proxy.ping(url)
