"""
security/header_policy.py

Security headers and the session cookie, derived from a static policy plus
the request's path and Host.

Non-developer summary:
----------------------
These headers harden every response: they restrict where scripts and images
may load from (CSP), forbid framing (clickjacking), pin HTTPS (HSTS), stop
MIME sniffing and limit referrer leakage. All of it comes from one immutable
SecurityPolicy built at startup; the only per-request decision is whether
the browser may prefetch DNS.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.config import Settings


# Stable output order for known CSP directives; unknown ones follow alphabetically.
CSP_DIRECTIVE_ORDER: Tuple[str, ...] = (
    "default-src",
    "img-src",
    "script-src",
    "style-src",
    "font-src",
    "connect-src",
    "media-src",
    "object-src",
    "frame-src",
    "frame-ancestors",
    "base-uri",
    "form-action",
)

FRAME_POLICY_VALUES = {"deny": "DENY", "sameorigin": "SAMEORIGIN", "same-origin": "SAMEORIGIN"}

# Headers the framework or a proxy might add that must never reach the client.
REMOVED_HEADERS: Tuple[str, ...] = ("X-Powered-By",)

ONE_DAY_SECONDS = 86400


class CookiePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "session_id"
    value: str = "some-session-value"
    path: str = "/"
    max_age: int = Field(ONE_DAY_SECONDS, ge=0)
    http_only: bool = True
    same_site: str = "Strict"
    secure: bool = False

    @field_validator("same_site")
    @classmethod
    def check_same_site(cls, v: str) -> str:
        # Emitted as written in Set-Cookie, so keep the canonical casing.
        if v.lower() not in ("strict", "lax", "none"):
            raise ValueError("same_site must be strict, lax or none")
        return v.capitalize()


class SecurityPolicy(BaseModel):
    """
    Immutable, validated security configuration. Build once per process
    (see from_settings) and share by reference.
    """

    model_config = ConfigDict(frozen=True)

    csp_directives: Dict[str, Tuple[str, ...]] = Field(
        default_factory=lambda: {
            "default-src": ("'self'",),
            "img-src": ("'self'", "data:", "http://localhost:3000"),
            "script-src": ("'self'",),
        }
    )
    frame_policy: str = "deny"
    hsts_enabled: bool = True
    hsts_max_age: int = Field(31536000, ge=0)
    hsts_include_subdomains: bool = True
    hsts_preload: bool = True
    referrer_policy: str = "no-referrer"
    permissions: Dict[str, Tuple[str, ...]] = Field(
        default_factory=lambda: {
            "geolocation": (),
            "microphone": (),
            "camera": (),
            "fullscreen": ("self",),
        }
    )
    cookie: CookiePolicy = Field(default_factory=CookiePolicy)
    third_party_path: str = "/api/test/third-party-content"

    @field_validator("frame_policy")
    @classmethod
    def check_frame_policy(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("frame_policy must not be empty")
        return v.strip()

    @classmethod
    def from_settings(cls, s: Settings) -> "SecurityPolicy":
        img_src = ["'self'", "data:", "http://localhost:3000"]
        img_src += [src for src in s.trusted_source_list if src not in img_src]
        return cls(
            csp_directives={
                "default-src": ("'self'",),
                "img-src": tuple(img_src),
                "script-src": ("'self'",),
            },
            frame_policy=s.FRAME_POLICY,
            hsts_max_age=s.HSTS_MAX_AGE,
            hsts_include_subdomains=s.HSTS_INCLUDE_SUBDOMAINS,
            hsts_preload=s.HSTS_PRELOAD,
            referrer_policy=s.REFERRER_POLICY,
            cookie=CookiePolicy(
                name=s.SESSION_COOKIE_NAME,
                value=s.SESSION_COOKIE_VALUE,
                secure=s.is_production,
            ),
            third_party_path=s.third_party_path,
        )


@dataclass(frozen=True)
class CookieAssignment:
    name: str
    value: str
    path: str
    max_age: int
    expires: datetime
    http_only: bool
    same_site: str
    secure: bool


@dataclass(frozen=True)
class SecurityHeaders:
    headers: List[Tuple[str, str]]
    cookie: CookieAssignment


# ---------------- Individual rules ----------------

def build_csp(directives: Dict[str, Tuple[str, ...]]) -> str:
    """
    Join directives as "<name> <sources...>" in a fixed order.
    A directive missing from the config is missing from the output.
    """
    known = [d for d in CSP_DIRECTIVE_ORDER if d in directives]
    extra = sorted(d for d in directives if d not in CSP_DIRECTIVE_ORDER)
    parts = []
    for name in known + extra:
        sources = " ".join(directives[name])
        parts.append(f"{name} {sources}".rstrip())
    return "; ".join(parts)


def frame_options_value(policy: str) -> str:
    return FRAME_POLICY_VALUES.get(policy.lower(), policy)


def hsts_value(max_age: int, include_subdomains: bool, preload: bool) -> str:
    value = f"max-age={max_age}"
    if include_subdomains:
        value += "; includeSubDomains"
    if preload:
        value += "; preload"
    return value


def permissions_policy_value(grants: Dict[str, Tuple[str, ...]]) -> str:
    items = []
    for feature, allow in grants.items():
        rendered = " ".join(a if a in ("self", "*") else f'"{a}"' for a in allow)
        items.append(f"{feature}=({rendered})")
    return ", ".join(items)


def is_local_host(host: Optional[str]) -> bool:
    """True when the Host header names a loopback address or localhost."""
    if not host:
        return False
    host = host.strip().lower()
    if host.startswith("["):
        name = host[1:].split("]", 1)[0]
    else:
        name = host.rsplit(":", 1)[0] if host.count(":") == 1 else host
    if name == "localhost" or name.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(name).is_loopback
    except ValueError:
        return False


def dns_prefetch_value(path: str, host: Optional[str], third_party_path: str) -> str:
    # Never prefetch while relaying someone else's page.
    if path == third_party_path:
        return "off"
    return "on" if is_local_host(host) else "off"


def session_cookie(policy: CookiePolicy, now: Optional[datetime] = None) -> CookieAssignment:
    now = now or datetime.now(tz=timezone.utc)
    return CookieAssignment(
        name=policy.name,
        value=policy.value,
        path=policy.path,
        max_age=policy.max_age,
        expires=now + timedelta(seconds=policy.max_age),
        http_only=policy.http_only,
        same_site=policy.same_site,
        secure=policy.secure,
    )


# ---------------- Composer ----------------

def compose_security_headers(
    path: str,
    host: Optional[str],
    policy: SecurityPolicy,
    *,
    now: Optional[datetime] = None,
) -> SecurityHeaders:
    """
    Total over any input: returns the header assignments (in a stable order)
    and the session cookie for one request.
    """
    headers: List[Tuple[str, str]] = []

    csp = build_csp(policy.csp_directives)
    if csp:
        headers.append(("Content-Security-Policy", csp))
    headers.append(("X-DNS-Prefetch-Control", dns_prefetch_value(path, host, policy.third_party_path)))
    headers.append(("X-Frame-Options", frame_options_value(policy.frame_policy)))
    if policy.hsts_enabled:
        headers.append((
            "Strict-Transport-Security",
            hsts_value(policy.hsts_max_age, policy.hsts_include_subdomains, policy.hsts_preload),
        ))
    headers.append(("X-XSS-Protection", "1; mode=block"))
    headers.append(("X-Content-Type-Options", "nosniff"))
    headers.append(("Referrer-Policy", policy.referrer_policy))
    headers.append(("Permissions-Policy", permissions_policy_value(policy.permissions)))

    return SecurityHeaders(headers=headers, cookie=session_cookie(policy.cookie, now))
