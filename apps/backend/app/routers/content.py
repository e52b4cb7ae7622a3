"""
routers/content.py

Demonstration routes for the response-side pipeline stages:

- GET /test/third-party-content : relays an external page (DNS prefetch is
  forced off on this route).
- GET /test/large-content       : a large HTML body (compressed when the
  client accepts gzip).
- GET /large                    : the same page outside the API prefix.
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from ..core.errors import UpstreamFetchFailed
from ..schemas.common import ErrorEnvelope
from ..services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/test", tags=["test"])
root_router = APIRouter(tags=["test"])

LARGE_PAGE = "<html><body>" + "Hello, this response is compressed! " * 1000 + "</body></html>"


@router.get("/third-party-content", response_class=HTMLResponse, responses={500: {"model": ErrorEnvelope}})
async def get_third_party_content(services: AppServices = Depends(get_services)):
    url = services.settings.THIRD_PARTY_URL
    try:
        upstream = await services.http_client.get(url)
        upstream.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("upstream_fetch_failed", extra={"url": url}, exc_info=exc)
        raise UpstreamFetchFailed(url) from exc
    return HTMLResponse(upstream.text)


@router.get("/large-content", response_class=HTMLResponse)
async def get_large_content():
    return HTMLResponse(LARGE_PAGE)


@root_router.get("/large", response_class=HTMLResponse)
async def get_large():
    return HTMLResponse(LARGE_PAGE)
