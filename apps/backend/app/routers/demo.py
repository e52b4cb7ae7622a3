"""
routers/demo.py

GET /demo -> {"message": "This is some data from the database."}

Simulates a slow data source (DEMO_DELAY_SEC, one second by default). The
route is cache-enabled (CACHE_ROUTES), so within CACHE_TTL_SEC a repeat
request is answered from the cache and never waits.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from ..schemas.common import MessageBody
from ..services.container import AppServices, get_services

router = APIRouter(prefix="/demo", tags=["demo"])

DEMO_PAYLOAD = {"message": "This is some data from the database."}


async def load_demo_data(delay: float) -> dict:
    # Stand-in for an expensive query.
    if delay > 0:
        await asyncio.sleep(delay)
    return dict(DEMO_PAYLOAD)


@router.get("", response_model=MessageBody)
async def get_data_with_caching(services: AppServices = Depends(get_services)):
    return await load_demo_data(services.settings.DEMO_DELAY_SEC)
