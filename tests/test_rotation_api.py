"""HTTP tests for the rotation routes.

Run with:
    pytest tests/test_rotation_api.py -v
"""

import json

import jwt
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from app.api.events import SessionEvents
from app.api.main import app
from app.api.routers import rotation as r_rotation
from app.services.field_partition import UNASSIGNED_BUCKET
from conftest import CURRENT_PASSWORD_SELECTORS, NEW_PASSWORD_SELECTORS, USERNAME_SELECTORS, field_id


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("ENFORCE_JWT", raising=False)
    with TestClient(app) as test_client:
        yield test_client


def _new_session(client, **body):
    resp = client.post("/rotation/sessions", json=body or None)
    assert resp.status_code == 201
    return resp.json()["sessionId"]


def _upload(client, session_id, raw):
    return client.post(
        f"/rotation/sessions/{session_id}/recording",
        files={"recording": ("recording.json", raw, "application/json")},
    )


def _move(client, session_id, selectors, source, source_index, dest, dest_index):
    return client.post(
        f"/rotation/sessions/{session_id}/moves",
        json={
            "fieldId": field_id(selectors),
            "sourceBucket": source,
            "sourceIndex": source_index,
            "destBucket": dest,
            "destIndex": dest_index,
        },
    )


def test_healthcheck(client):
    resp = client.get("/healthz")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["service"] == "credential-rotator"


def test_full_rotation_flow(client, recording_bytes, recording_doc):
    session_id = _new_session(client)

    snapshot = _upload(client, session_id, recording_bytes).json()
    assert snapshot["loaded"] is True
    assert snapshot["ready"] is False
    assert len(snapshot["buckets"][UNASSIGNED_BUCKET]) == 3

    snapshot = _move(client, session_id, USERNAME_SELECTORS, UNASSIGNED_BUCKET, 0, "usernameMappings", 0).json()
    assert snapshot["buckets"]["usernameMappings"] == [field_id(USERNAME_SELECTORS)]
    assert snapshot["ready"] is False

    _move(client, session_id, CURRENT_PASSWORD_SELECTORS, UNASSIGNED_BUCKET, 0, "passwordMappings", 0)
    _move(client, session_id, NEW_PASSWORD_SELECTORS, UNASSIGNED_BUCKET, 0, "newPasswordMappings", 0)
    assert client.get(f"/rotation/sessions/{session_id}/ready").json()["ready"] is True

    resp = client.post(f"/rotation/sessions/{session_id}/payload")
    assert resp.status_code == 200
    body = resp.json()
    assert body["payload"]["username"] == "alice@example.test"
    assert body["payload"]["password"] == "N3w-secret!"
    assert body["payload"]["recording"] == recording_doc
    assert json.loads(body["text"]) == body["payload"]


def test_malformed_upload_is_rejected_without_losing_state(client, recording_bytes):
    session_id = _new_session(client)
    _upload(client, session_id, recording_bytes)

    resp = _upload(client, session_id, b"not json at all")

    assert resp.status_code == 400
    assert "valid recording JSON" in resp.json()["detail"]
    assert client.get(f"/rotation/sessions/{session_id}").json()["loaded"] is True


def test_oversized_upload_is_rejected(client, monkeypatch, recording_bytes):
    monkeypatch.setattr(r_rotation, "MAX_RECORDING_BYTES", 64)
    session_id = _new_session(client)

    resp = _upload(client, session_id, recording_bytes)

    assert resp.status_code == 400
    assert "byte limit" in resp.json()["detail"]
    assert client.get(f"/rotation/sessions/{session_id}").json()["loaded"] is False


def test_invalid_move_returns_unchanged_buckets(client, recording_bytes):
    session_id = _new_session(client)
    before = _upload(client, session_id, recording_bytes).json()["buckets"]

    resp = _move(client, session_id, USERNAME_SELECTORS, UNASSIGNED_BUCKET, 2, "usernameMappings", 0)

    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["code"] == "invalid_index"
    assert detail["buckets"] == before


def test_unknown_bucket_move(client, recording_bytes):
    session_id = _new_session(client)
    _upload(client, session_id, recording_bytes)

    resp = _move(client, session_id, USERNAME_SELECTORS, UNASSIGNED_BUCKET, 0, "emailMappings", 0)

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "unknown_bucket"


def test_move_before_upload(client):
    session_id = _new_session(client)

    resp = _move(client, session_id, USERNAME_SELECTORS, UNASSIGNED_BUCKET, 0, "usernameMappings", 0)

    assert resp.status_code == 409


def test_payload_not_ready(client, recording_bytes):
    session_id = _new_session(client)
    _upload(client, session_id, recording_bytes)

    resp = client.post(f"/rotation/sessions/{session_id}/payload")

    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["ready"] is False
    assert detail["unassignedCount"] == 3


def test_options_update_and_validation(client):
    session_id = _new_session(client, options={"length": 12})
    assert client.get(f"/rotation/sessions/{session_id}").json()["options"]["length"] == 12

    resp = client.put(f"/rotation/sessions/{session_id}/options", json={"symbols": False})
    assert resp.status_code == 200
    assert resp.json()["options"]["symbols"] is False

    resp = client.put(f"/rotation/sessions/{session_id}/options", json={"length": "long"})
    assert resp.status_code == 422
    assert client.get(f"/rotation/sessions/{session_id}").json()["options"]["length"] == 12


def test_create_session_with_bad_options(client):
    resp = client.post("/rotation/sessions", json={"options": {"nope": 1}})

    assert resp.status_code == 422


def test_options_schema(client):
    options = client.get("/rotation/options/schema").json()["options"]

    assert options["length"]["default"] == 16


def test_unknown_session_and_discard(client):
    assert client.get("/rotation/sessions/does-not-exist").status_code == 404

    session_id = _new_session(client)
    assert client.delete(f"/rotation/sessions/{session_id}").json()["status"] == "discarded"
    assert client.get(f"/rotation/sessions/{session_id}").status_code == 404
    assert client.delete(f"/rotation/sessions/{session_id}").status_code == 404


def test_enforced_jwt_rejects_anonymous(client, monkeypatch):
    monkeypatch.setenv("ENFORCE_JWT", "true")

    assert client.post("/rotation/sessions").status_code == 401
    assert client.get("/healthz").status_code == 200


def test_enforced_jwt_accepts_signed_token(client, monkeypatch):
    monkeypatch.setenv("ENFORCE_JWT", "true")
    monkeypatch.setenv("AUTH_JWT_SECRET", "test-secret-test-secret-test-secret")
    token = jwt.encode({"sub": "operator-1"}, "test-secret-test-secret-test-secret", algorithm="HS256")

    resp = client.post("/rotation/sessions", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 201

    bad = client.post("/rotation/sessions", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_websocket_receives_session_events(client, recording_bytes):
    session_id = _new_session(client)

    with client.websocket_connect(f"/ws/rotation/{session_id}") as ws:
        _upload(client, session_id, recording_bytes)
        loaded = ws.receive_json()
        client.delete(f"/rotation/sessions/{session_id}")
        discarded = ws.receive_json()
        # The stream ends once the session is gone.
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()

    assert loaded["type"] == "loaded"
    assert loaded["session"]["loaded"] is True
    assert discarded == {"type": "discarded", "sessionId": session_id}


def test_websocket_requires_operator_when_enforced(client, monkeypatch):
    session_id = _new_session(client)
    monkeypatch.setenv("ENFORCE_JWT", "true")
    monkeypatch.setenv("AUTH_JWT_SECRET", "test-secret-test-secret-test-secret")

    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"/ws/rotation/{session_id}"):
            pass
    assert excinfo.value.code == 1008

    token = jwt.encode({"sub": "operator-1"}, "test-secret-test-secret-test-secret", algorithm="HS256")
    headers = {"Authorization": f"Bearer {token}"}
    with client.websocket_connect(f"/ws/rotation/{session_id}?token={token}") as ws:
        client.delete(f"/rotation/sessions/{session_id}", headers=headers)
        assert ws.receive_json()["type"] == "discarded"


def test_session_events_fan_out_and_cleanup():
    events = SessionEvents()
    first = events.subscribe("abc")
    second = events.subscribe("abc")

    assert events.publish("abc", "moved", {"ready": False}) == 2
    assert events.publish("other", "moved") == 0
    assert first.get_nowait() == {"type": "moved", "sessionId": "abc", "session": {"ready": False}}
    assert second.get_nowait()["type"] == "moved"

    events.unsubscribe("abc", first)
    events.unsubscribe("abc", second)
    events.unsubscribe("abc", second)
    assert events.publish("abc", "discarded") == 0
