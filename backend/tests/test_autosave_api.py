from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger
from app.main import app
from app.services.autosave_service import AutosaveService


async def post_autosave(client: AsyncClient, payload: dict):
    return await client.post("/api/v1/sessions/autosave", json=payload)


@pytest.mark.asyncio
async def test_create_autosave(client: AsyncClient, snapshot_payload):
    """Test appending an autosave"""
    payload = snapshot_payload()

    response = await post_autosave(client, payload)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["autosaveId"] == payload["id"]
    assert data["created"] is True
    assert data["timestamp"] == "2024-01-15T10:00:00+00:00"


@pytest.mark.asyncio
async def test_create_autosave_is_idempotent(client: AsyncClient, snapshot_payload, session_id):
    """Test re-sending the same snapshot id"""
    payload = snapshot_payload()

    await post_autosave(client, payload)
    response = await post_autosave(client, payload)

    assert response.status_code == 200
    assert response.json()["created"] is False

    history = await client.get(f"/api/v1/sessions/autosave/{session_id}/history")
    assert history.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_create_autosave_without_id(client: AsyncClient, snapshot_payload):
    """Test the server assigns an id when the client sends none"""
    payload = snapshot_payload()
    del payload["id"]

    response = await post_autosave(client, payload)

    assert response.status_code == 200
    assert len(response.json()["autosaveId"]) == 32


@pytest.mark.asyncio
async def test_autosave_id_owned_by_other_session(client: AsyncClient, snapshot_payload):
    """Test an id cannot be reused across sessions"""
    payload = snapshot_payload()
    await post_autosave(client, payload)

    response = await post_autosave(client, {**payload, "sessionId": "someone-else"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"sessionId": ""},
    {"sessionId": "a/b"},
    {"trigger": "sometimes"},
    {"messageCount": -1},
])
async def test_create_autosave_rejects_malformed(client: AsyncClient, snapshot_payload, overrides):
    """Test request validation"""
    response = await post_autosave(client, snapshot_payload(**overrides))

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["code"] == "VALIDATION_ERROR"
    assert data["error"]


@pytest.mark.asyncio
async def test_create_autosave_too_large(client: AsyncClient, snapshot_payload, monkeypatch):
    """Test the snapshot size limit"""
    monkeypatch.setattr(settings, "AUTOSAVE_MAX_SNAPSHOT_BYTES", 100)

    response = await post_autosave(client, snapshot_payload(code="x" * 200))

    assert response.status_code == 413
    data = response.json()
    assert data["code"] == "SNAPSHOT_TOO_LARGE"
    assert data["details"]["limit"] == 100


@pytest.mark.asyncio
async def test_history_pagination(client: AsyncClient, snapshot_payload, session_id):
    """Test newest-first paging"""
    payloads = [snapshot_payload() for _ in range(5)]
    for payload in payloads:
        await post_autosave(client, payload)

    first = await client.get(f"/api/v1/sessions/autosave/{session_id}/history?limit=2")
    last = await client.get(f"/api/v1/sessions/autosave/{session_id}/history?limit=2&offset=4")

    assert first.status_code == 200
    page = first.json()
    assert [e["id"] for e in page["history"]] == [payloads[4]["id"], payloads[3]["id"]]
    assert page["pagination"] == {"total": 5, "limit": 2, "offset": 0, "hasMore": True}
    assert page["history"][0]["codeLength"] == len(payloads[4]["code"])

    tail = last.json()
    assert [e["id"] for e in tail["history"]] == [payloads[0]["id"]]
    assert tail["pagination"]["hasMore"] is False


@pytest.mark.asyncio
async def test_history_limit_is_clamped(client: AsyncClient, session_id):
    """Test the maximum page size"""
    response = await client.get(f"/api/v1/sessions/autosave/{session_id}/history?limit=1000")

    assert response.status_code == 200
    assert response.json()["pagination"]["limit"] == settings.AUTOSAVE_HISTORY_MAX_LIMIT


@pytest.mark.asyncio
async def test_restore_session(client: AsyncClient, snapshot_payload, session_id):
    """Test restoring the live session record"""
    await post_autosave(client, snapshot_payload(code="<p>first</p>"))
    await post_autosave(client, snapshot_payload(
        code="<p>second</p>",
        messages=[{"role": "user", "content": "Add a footer"}],
        messageCount=1,
        trigger="chat",
    ))

    response = await client.get(f"/api/v1/sessions/restore/{session_id}")

    assert response.status_code == 200
    session_data = response.json()["sessionData"]
    assert session_data["id"] == f"session-{session_id}"
    assert session_data["code"] == "<p>second</p>"
    assert session_data["messageCount"] == 1
    assert session_data["messages"] == [{"role": "user", "content": "Add a footer"}]
    assert session_data["lastSaved"] == "2024-01-15T10:00:01+00:00"
    assert session_data["restoredFrom"] == "session"


@pytest.mark.asyncio
async def test_late_replay_does_not_roll_back_session(client: AsyncClient, snapshot_payload, session_id):
    """Test an older snapshot arriving last leaves the newer record"""
    older = snapshot_payload(code="<p>older</p>")
    newer = snapshot_payload(code="<p>newer</p>")

    await post_autosave(client, newer)
    await post_autosave(client, older)

    response = await client.get(f"/api/v1/sessions/restore/{session_id}")
    assert response.json()["sessionData"]["code"] == "<p>newer</p>"


@pytest.mark.asyncio
async def test_restore_specific_autosave(client: AsyncClient, snapshot_payload, session_id):
    """Test restoring one entry of the log"""
    first = snapshot_payload(code="<p>first</p>")
    await post_autosave(client, first)
    await post_autosave(client, snapshot_payload(code="<p>second</p>"))

    response = await client.get(
        f"/api/v1/sessions/restore/{session_id}", params={"autosaveId": first["id"]}
    )

    assert response.status_code == 200
    session_data = response.json()["sessionData"]
    assert session_data["id"] == first["id"]
    assert session_data["code"] == "<p>first</p>"
    assert session_data["restoredFrom"] == "autosave"


@pytest.mark.asyncio
async def test_restore_unknown_session(client: AsyncClient):
    """Test the not-found response shape"""
    response = await client.get("/api/v1/sessions/restore/nobody")

    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert data["code"] == "SESSION_NOT_FOUND"
    assert "nobody" in data["error"]


@pytest.mark.asyncio
async def test_restore_unknown_autosave(client: AsyncClient, snapshot_payload, session_id):
    """Test an autosave id that is not in the session's log"""
    await post_autosave(client, snapshot_payload())

    response = await client.get(
        f"/api/v1/sessions/restore/{session_id}", params={"autosaveId": "missing"}
    )

    assert response.status_code == 404
    assert response.json()["code"] == "AUTOSAVE_NOT_FOUND"


@pytest.mark.asyncio
async def test_stats(client: AsyncClient, snapshot_payload, session_id):
    """Test save statistics"""
    await post_autosave(client, snapshot_payload(code="abcd"))
    await post_autosave(client, snapshot_payload(code="ab", trigger="chat"))
    await post_autosave(client, snapshot_payload(code="abcdef", trigger="manual", isAutoSave=False))

    response = await client.get(f"/api/v1/sessions/stats/{session_id}")

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalSaves"] == 3
    assert stats["autoSaves"] == 2
    assert stats["manualSaves"] == 1
    assert stats["triggerCounts"] == {"auto": 1, "chat": 1, "manual": 1}
    assert stats["firstSave"] == "2024-01-15T10:00:00+00:00"
    assert stats["lastSave"] == "2024-01-15T10:00:02+00:00"
    assert stats["averageCodeLength"] == 4.0


@pytest.mark.asyncio
async def test_stats_empty_session(client: AsyncClient):
    """Test statistics of a session without saves"""
    response = await client.get("/api/v1/sessions/stats/empty-session")

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalSaves"] == 0
    assert stats["firstSave"] is None
    assert stats["triggerCounts"] == {}


@pytest.mark.asyncio
async def test_bulk_restore(client: AsyncClient, snapshot_payload, session_id):
    """Test session records for several sessions"""
    await post_autosave(client, snapshot_payload())
    await post_autosave(client, snapshot_payload(sessionId="second-session", id=None))

    response = await client.post(
        "/api/v1/sessions/bulk-restore",
        json={"sessionIds": [session_id, "second-session", "unknown-session"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["found"] == 2
    assert data["requested"] == 3
    assert set(data["sessions"]) == {session_id, "second-session"}


@pytest.mark.asyncio
async def test_bulk_restore_requires_ids(client: AsyncClient):
    """Test an empty bulk request"""
    response = await client.post("/api/v1/sessions/bulk-restore", json={"sessionIds": []})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_health_checks(client: AsyncClient):
    """Test the root and API health endpoints"""
    root = await client.get("/health")
    api = await client.get("/api/v1/health")

    assert root.status_code == 200
    assert root.json()["status"] == "healthy"
    assert api.status_code == 200
    assert api.json()["database"] == "ok"
    assert "X-Request-ID" in api.headers


@pytest.mark.asyncio
async def test_session_id_header(client: AsyncClient, session_id):
    """Test session-scoped requests echo the session id"""
    response = await client.get(
        f"/api/v1/sessions/stats/{session_id}", headers={"X-Request-ID": "req-123"}
    )

    assert response.headers["X-Session-ID"] == session_id
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_unhandled_error_is_logged(db_session, monkeypatch):
    """Test an unexpected failure becomes a 500 with a logged context"""
    async def failing_stats(self, session_id):
        raise RuntimeError("stats unavailable")

    async def override_get_db():
        yield db_session

    log_error = MagicMock()
    monkeypatch.setattr(AutosaveService, "stats", failing_stats)
    monkeypatch.setattr(logger, "log_error_with_context", log_error)
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/sessions/stats/broken")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    log_error.assert_called_once()
    error, = log_error.call_args.args
    assert isinstance(error, RuntimeError)
    assert log_error.call_args.kwargs["http_path"] == "/api/v1/sessions/stats/broken"
