from datetime import datetime, timedelta, timezone

import pytest

from apps.backend.app.security.header_policy import (
    CookiePolicy,
    SecurityPolicy,
    build_csp,
    compose_security_headers,
    dns_prefetch_value,
    frame_options_value,
    hsts_value,
    is_local_host,
    permissions_policy_value,
)
from apps.backend.app.tests.helpers import make_settings

THIRD_PARTY = "/api/test/third-party-content"


def _headers(path="/api/users", host="testserver", policy=None):
    return dict(compose_security_headers(path, host, policy or SecurityPolicy()).headers)


def test_default_headers_match_published_values():
    h = _headers()
    assert h["Content-Security-Policy"] == (
        "default-src 'self'; img-src 'self' data: http://localhost:3000; script-src 'self'"
    )
    assert h["X-Frame-Options"] == "DENY"
    assert h["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains; preload"
    assert h["X-XSS-Protection"] == "1; mode=block"
    assert h["X-Content-Type-Options"] == "nosniff"
    assert h["Referrer-Policy"] == "no-referrer"
    assert h["Permissions-Policy"] == "geolocation=(), microphone=(), camera=(), fullscreen=(self)"
    assert "X-Powered-By" not in h


def test_csp_order_is_stable_and_omits_missing_directives():
    csp = build_csp({"script-src": ("'self'",), "zz-custom": ("a",), "default-src": ("'none'",)})
    assert csp == "default-src 'none'; script-src 'self'; zz-custom a"
    assert "img-src" not in csp
    assert build_csp({}) == ""


def test_empty_csp_is_not_emitted():
    h = _headers(policy=SecurityPolicy(csp_directives={}))
    assert "Content-Security-Policy" not in h


@pytest.mark.parametrize(
    "configured,expected",
    [("deny", "DENY"), ("DENY", "DENY"), ("sameorigin", "SAMEORIGIN"), ("ALLOW-FROM https://a.example", "ALLOW-FROM https://a.example")],
)
def test_frame_policy_mapping(configured, expected):
    assert frame_options_value(configured) == expected


def test_hsts_optional_clauses():
    assert hsts_value(100, False, False) == "max-age=100"
    assert hsts_value(100, True, False) == "max-age=100; includeSubDomains"
    assert hsts_value(100, False, True) == "max-age=100; preload"


def test_hsts_disabled_omits_header():
    assert "Strict-Transport-Security" not in _headers(policy=SecurityPolicy(hsts_enabled=False))


def test_permissions_policy_quotes_origins():
    value = permissions_policy_value({"camera": (), "fullscreen": ("self", "https://a.example")})
    assert value == 'camera=(), fullscreen=(self "https://a.example")'


@pytest.mark.parametrize(
    "host,expected",
    [
        ("localhost", True),
        ("localhost:3001", True),
        ("127.0.0.1:8000", True),
        ("[::1]:3001", True),
        ("::1", True),
        ("app.localhost", True),
        ("testserver", False),
        ("localhost.evil.example", False),
        ("example.com", False),
        (None, False),
        ("", False),
    ],
)
def test_local_host_detection(host, expected):
    assert is_local_host(host) is expected


def test_dns_prefetch_is_context_dependent():
    assert dns_prefetch_value("/api/users", "localhost:3001", THIRD_PARTY) == "on"
    assert dns_prefetch_value("/api/users", "api.example.com", THIRD_PARTY) == "off"
    # Relaying third-party content always disables prefetch, even locally.
    assert dns_prefetch_value(THIRD_PARTY, "localhost:3001", THIRD_PARTY) == "off"


def test_cookie_attributes_and_expiry():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    cookie = compose_security_headers("/", "localhost", SecurityPolicy(), now=now).cookie
    assert cookie.name == "session_id"
    assert cookie.http_only is True
    assert cookie.same_site == "Strict"
    assert CookiePolicy(same_site="lax").same_site == "Lax"
    assert cookie.secure is False
    assert cookie.max_age == 86400
    assert cookie.expires == now + timedelta(days=1)


def test_policy_from_settings_production_and_trusted_sources():
    s = make_settings(APP_STAGE="production", TRUSTED_SOURCES="https://cdn.example, data:")
    policy = SecurityPolicy.from_settings(s)
    assert policy.cookie.secure is True
    assert policy.csp_directives["img-src"] == ("'self'", "data:", "http://localhost:3000", "https://cdn.example")
    assert policy.third_party_path == THIRD_PARTY

    dev = SecurityPolicy.from_settings(make_settings(APP_STAGE="dev"))
    assert dev.cookie.secure is False


def test_policy_is_immutable_and_validated():
    policy = SecurityPolicy()
    with pytest.raises(Exception):
        policy.frame_policy = "sameorigin"
    with pytest.raises(ValueError):
        CookiePolicy(same_site="sideways")
    with pytest.raises(ValueError):
        SecurityPolicy(frame_policy="  ")
