from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from authstate.api import schemas
from authstate.app import app
from authstate.service.errors import StoreUnavailableError
from authstate.service.runtime import get_runtime


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seeded():
    store = get_runtime().store
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    store.create_user("a@example.com", user_id="u1", status="active")
    store.create_user("b@example.com", user_id="u2", status="suspended")
    store.add_session("tok1", "u1", expires)
    store.add_session("tok2", "u2", expires)
    return store


def test_health(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_session_verdict_from_cookie(client, seeded):
    client.cookies.set("session_id", "tok1")
    response = client.get("/v1/session", headers={"X-Request-ID": "req-42"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["data"] == {"valid": True, "user_id": "u1"}
    assert body["request_id"] == "req-42"
    assert response.headers["X-Request-ID"] == "req-42"
    assert response.headers["Cache-Control"].startswith("no-store")


def test_session_verdict_from_header(client, seeded):
    response = client.get("/v1/session", headers={"session_id": "tok2"})

    assert response.json()["data"] == {"valid": False, "user_id": None}


def test_missing_session_is_invalid_not_error(client):
    response = client.get("/v1/session")

    assert response.status_code == 200
    assert response.json()["data"] == {"valid": False, "user_id": None}


def test_status_requires_valid_session(client, seeded):
    response = client.get("/v1/users/me/status", headers={"session_id": "tok2"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


def test_status_for_current_user(client, seeded):
    response = client.get("/v1/users/me/status", headers={"session_id": "tok1"})

    assert response.status_code == 200
    assert response.json()["data"] == {"user_id": "u1", "status": "active"}


def test_verify_session_owner(client, seeded):
    headers = {"session_id": "tok1"}

    match = client.post("/v1/session/verify", json={"user_id": "u1"}, headers=headers)
    mismatch = client.post("/v1/session/verify", json={"user_id": "u2"}, headers=headers)

    assert match.json()["data"] == {"match": True}
    assert mismatch.json()["data"] == {"match": False}


def test_verify_session_rejects_bad_body(client):
    response = client.post("/v1/session/verify", json={"user_id": ""})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_store_outage_is_distinct_from_invalid(client, monkeypatch):
    def down(token):
        raise StoreUnavailableError("durable store unavailable", detail={"operation": "x"})

    monkeypatch.setattr(get_runtime().store, "get_session_with_status", down)

    response = client.get("/v1/session", headers={"session_id": "tok1"})

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "store_unavailable"
    assert body["error"]["details"] is None


def test_error_body_rejects_unknown_codes():
    with pytest.raises(ValidationError):
        schemas.ErrorBody(code="teapot", message="nope")


def test_envelope_status_pattern():
    with pytest.raises(ValidationError):
        schemas.Envelope(status="maybe")
