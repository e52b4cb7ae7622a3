"""
middleware/request_id.py

Guarantees an X-Request-ID for every request, makes it available in:
  - request.state.request_id (for handlers and error envelopes)
  - logging context (JSON logs include it)

Non-developer summary:
----------------------
This adds a unique id to each request so we can trace it across services
and logs. If the client provides one, we keep it; otherwise we create one.
"""

from __future__ import annotations

import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.logging import request_id_var


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    - Accept or generate a request id.
    - Store it in request.state and logging context.
    - Echo it back in the response header.
    """

    header_name: str = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming: Optional[str] = request.headers.get(self.header_name)
        rid = incoming.strip()[:128] if incoming and incoming.strip() else str(uuid.uuid4())

        # Expose to handlers and logging
        request.state.request_id = rid
        token = request_id_var.set(rid)
        try:
            response: Response = await call_next(request)
        finally:
            # Restore previous context to avoid leaking the id across requests
            request_id_var.reset(token)

        response.headers[self.header_name] = rid
        return response
