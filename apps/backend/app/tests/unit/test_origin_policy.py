import pytest

from apps.backend.app.core.errors import OriginNotAllowed
from apps.backend.app.security.origin_policy import OriginValidator, is_preflight


@pytest.fixture
def validator():
    return OriginValidator(["http://localhost:3000", "http://localhost:2999/"])


def test_absent_origin_is_allowed_without_headers(validator):
    decision = validator.check(None)
    assert decision.origin is None
    assert decision.headers == []

    assert validator.check("").headers == []


def test_allowed_origin_is_echoed_with_methods_and_headers(validator):
    decision = validator.check("http://localhost:3000")
    headers = dict(decision.headers)
    assert headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert headers["Access-Control-Allow-Methods"] == "GET,POST,PUT,DELETE"
    assert headers["Access-Control-Allow-Headers"] == "Content-Type,Authorization"
    assert headers["Vary"] == "Origin"


def test_trailing_slash_in_config_is_normalized(validator):
    assert validator.allowed_origins == ("http://localhost:3000", "http://localhost:2999")
    assert validator.check("http://localhost:2999").origin == "http://localhost:2999"


@pytest.mark.parametrize("origin", ["http://evil.example", "http://localhost:3001", "https://localhost:3000"])
def test_unknown_origin_raises(validator, origin):
    with pytest.raises(OriginNotAllowed) as ei:
        validator.check(origin)
    assert ei.value.status == 500
    assert ei.value.code == "ORIGIN_NOT_ALLOWED"
    assert ei.value.origin == origin


def test_preflight_detection():
    assert is_preflight("OPTIONS", "GET")
    assert not is_preflight("OPTIONS", None)
    assert not is_preflight("GET", "GET")
