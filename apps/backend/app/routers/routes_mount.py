"""
routers/routes_mount.py

Single hub for mounting all API routes under the API base path.

Non-developer summary:
----------------------
We keep one function (`register_routes(app, settings)`) that attaches
/users, /demo and /test/* under the API prefix (e.g., /api). This keeps
wiring clean and makes it easy to change the base path later if needed.
"""

from __future__ import annotations

from fastapi import FastAPI

from ..core.config import Settings
from . import content
from . import demo
from . import users


def register_routes(app: FastAPI, settings: Settings) -> None:
    """
    Attach all API routers under the API base path.

    Health endpoints and /large live at root (outside rate limiting).
    """
    base = settings.API_BASE_PATH
    app.include_router(users.router, prefix=base)
    app.include_router(demo.router, prefix=base)
    app.include_router(content.router, prefix=base)
    app.include_router(content.root_router)
