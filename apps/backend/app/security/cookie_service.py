"""
security/cookie_service.py

Writes the session cookie staged by the security header composer.

- session_id : HttpOnly, SameSite=Strict, one day, Secure only in production

Non-developer summary:
----------------------
This helper sets the session cookie exactly the same way every time, so its
security attributes cannot drift between code paths.
"""

from __future__ import annotations

from starlette.responses import Response

from .header_policy import CookieAssignment


def apply_session_cookie(response: Response, cookie: CookieAssignment) -> None:
    """
    Set the staged session cookie on `response`.

    - HttpOnly prevents JavaScript access (mitigates XSS token theft).
    - SameSite=Strict keeps the cookie off every cross-site request.
    - Secure is decided by the policy (production only) so local HTTP works.
    - Both Max-Age and an absolute Expires are sent for older clients.
    """
    response.set_cookie(
        key=cookie.name,
        value=cookie.value,
        expires=cookie.expires,
        max_age=cookie.max_age,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )
