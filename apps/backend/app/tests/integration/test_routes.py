from fastapi.testclient import TestClient

from apps.backend.app.main import create_app
from apps.backend.app.tests.helpers import make_settings, upstream_client


def test_list_users(client):
    r = client.get("/api/users")
    assert r.status_code == 200
    assert r.json() == [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
    # No Origin header: no CORS echo
    assert "access-control-allow-origin" not in r.headers


def test_get_single_user(client):
    r = client.get("/api/users/2")
    assert r.status_code == 200
    assert r.json() == {"id": 2, "name": "Bob"}


def test_unknown_user_is_404(client):
    r = client.get("/api/users/99")
    assert r.status_code == 404
    assert r.json() == {"message": "User not found"}


def test_non_numeric_user_id_is_404(client):
    r = client.get("/api/users/abc")
    assert r.status_code == 404
    assert r.json() == {"message": "User not found"}


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    body = r.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["requestId"] == r.headers["x-request-id"]


def test_request_id_is_echoed(client):
    r = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert r.headers["x-request-id"] == "abc-123"


def test_health_and_readiness(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "dependencies": {"redis": None}}


def test_openapi_document_is_served(client):
    r = client.get("/api-docs.json")
    assert r.status_code == 200
    assert "/api/users" in r.json()["paths"]


def test_swagger_ui_hidden_in_production(store):
    app = create_app(make_settings(APP_STAGE="production"), cache_store=store, http_client=upstream_client())
    with TestClient(app) as c:
        assert c.get("/api-docs").status_code == 404
        assert c.get("/api-docs.json").status_code == 200


def test_third_party_content_is_relayed(client):
    r = client.get("/api/test/third-party-content")
    assert r.status_code == 200
    assert r.text == "<html>upstream</html>"
    assert r.headers["x-dns-prefetch-control"] == "off"


def test_third_party_failure_is_500(store):
    app = create_app(make_settings(), cache_store=store, http_client=upstream_client(fail=True))
    with TestClient(app) as c:
        r = c.get("/api/test/third-party-content")
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "UPSTREAM_FETCH_FAILED"
    assert r.json()["error"]["message"] == "Error fetching third-party content"


def test_third_party_error_status_is_500(store):
    app = create_app(make_settings(), cache_store=store, http_client=upstream_client(status=503))
    with TestClient(app) as c:
        r = c.get("/api/test/third-party-content")
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "UPSTREAM_FETCH_FAILED"


def test_openapi_documents_error_envelope(client):
    doc = client.get("/api-docs.json").json()
    responses = doc["paths"]["/api/test/third-party-content"]["get"]["responses"]
    assert "500" in responses
    assert "ErrorEnvelope" in doc["components"]["schemas"]


def test_unexpected_error_still_gets_pipeline_headers(app):
    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("kaboom")

    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/api/explode", headers={"X-Request-ID": "req-500"})

    assert r.status_code == 500
    body = r.json()
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert body["error"]["requestId"] == "req-500"
    assert "kaboom" not in r.text
    assert r.headers["x-request-id"] == "req-500"
    assert r.headers["x-content-type-options"] == "nosniff"
    assert r.headers["x-frame-options"] == "DENY"
    assert "content-security-policy" in r.headers
    assert "session_id=" in r.headers["set-cookie"]
