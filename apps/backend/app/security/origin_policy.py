"""
security/origin_policy.py

Allow-list based origin validation for cross-origin browser calls.

Non-developer summary:
----------------------
Browsers tell us which site a request comes from (the Origin header). We
only serve origins listed in ALLOWED_ORIGINS. Requests without an Origin
(same-site pages, curl, mobile apps) are always served. Requests from an
unknown site fail with a server error instead of quietly succeeding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..core.errors import OriginNotAllowed


ALLOWED_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE")
ALLOWED_HEADERS: Tuple[str, ...] = ("Content-Type", "Authorization")


@dataclass(frozen=True)
class OriginDecision:
    """Outcome of an allowed origin check, with the headers to echo back."""

    origin: Optional[str]
    headers: List[Tuple[str, str]] = field(default_factory=list)


class OriginValidator:
    """
    Enforces:
      - Absent Origin -> allowed, no CORS headers.
      - Origin on the allow-list -> allowed; the exact origin is echoed
        together with the permitted methods and headers.
      - Any other Origin -> OriginNotAllowed.

    Notes:
      * We never answer with a wildcard (*); the approved Origin is echoed.
      * The allow-list keeps its configured order and is read-only.
    """

    def __init__(self, allowed_origins: Iterable[str]):
        ordered: List[str] = []
        for o in allowed_origins:
            o = o.strip().rstrip("/")
            if o and o not in ordered:
                ordered.append(o)
        self.allowed_origins: Tuple[str, ...] = tuple(ordered)

    def is_allowed(self, origin: str) -> bool:
        return origin in self.allowed_origins

    def check(self, origin: Optional[str]) -> OriginDecision:
        """
        Validate the request's declared origin.

        Raises OriginNotAllowed for an origin that is present but unknown.
        """
        if not origin:
            return OriginDecision(origin=None)

        if not self.is_allowed(origin):
            raise OriginNotAllowed(origin)

        return OriginDecision(origin=origin, headers=echo_headers(origin))


def echo_headers(origin: str) -> List[Tuple[str, str]]:
    return [
        ("Access-Control-Allow-Origin", origin),
        ("Vary", "Origin"),  # ensure proxies don't mix origins
        ("Access-Control-Allow-Methods", ",".join(ALLOWED_METHODS)),
        ("Access-Control-Allow-Headers", ",".join(ALLOWED_HEADERS)),
    ]


def is_preflight(method: str, request_method_header: Optional[str]) -> bool:
    """A CORS preflight is an OPTIONS request announcing the real method."""
    return method.upper() == "OPTIONS" and bool(request_method_header)
