"""
Unit Tests for the Remote Autosave Client
Tests for: request shapes, status classification, response parsing
"""
import json

import httpx
import pytest

from studio.exceptions import (
    TransientRemoteError,
    ResourceNotFoundError,
    SnapshotValidationError,
)
from studio.remote import RemoteAutosaveClient


def make_client(config, handler) -> RemoteAutosaveClient:
    http = httpx.AsyncClient(
        base_url=config.api_base_url,
        transport=httpx.MockTransport(handler)
    )
    return RemoteAutosaveClient(config, client=http)


class TestRequests:
    """Test what the client sends"""

    @pytest.mark.asyncio
    async def test_autosave_posts_snapshot(self, config, make_snapshot):
        """Test the autosave request body"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"success": True, "autosaveId": "x"})

        snapshot = make_snapshot()
        remote = make_client(config, handler)

        await remote.autosave(snapshot)

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/v1/sessions/autosave"
        assert seen["body"]["sessionId"] == snapshot.session_id
        assert seen["body"]["isAutoSave"] is True
        assert seen["body"]["trigger"] == "auto"

    @pytest.mark.asyncio
    async def test_history_page(self, config, make_snapshot, session_id):
        """Test parsing a history page"""
        entries = [make_snapshot().to_dict() for _ in range(2)]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["limit"] == "2"
            assert request.url.params["offset"] == "4"
            return httpx.Response(200, json={
                "success": True,
                "history": entries + [{"sessionId": ""}],
                "pagination": {"total": 9, "limit": 2, "offset": 4, "hasMore": True},
            })

        page = await make_client(config, handler).autosave_history(session_id, limit=2, offset=4)

        assert [s.id for s in page.snapshots] == [e["id"] for e in entries]
        assert page.total == 9
        assert page.has_more

    @pytest.mark.asyncio
    async def test_restore_session(self, config, session_id):
        """Test parsing the session record"""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith(f"/sessions/restore/{session_id}")
            return httpx.Response(200, json={
                "success": True,
                "sessionData": {
                    "code": "<p>hi</p>",
                    "css": "p {}",
                    "lastSaved": "2024-01-15T10:00:00+00:00",
                },
            })

        snapshot = await make_client(config, handler).restore_session(session_id)

        assert snapshot.id == f"session-{session_id}"
        assert snapshot.styles == "p {}"
        assert snapshot.created_at.year == 2024

    @pytest.mark.asyncio
    async def test_auth_header(self, config):
        """Test the bearer token on an owned client"""
        config.auth_token = "secret"
        remote = RemoteAutosaveClient(config)
        try:
            assert remote._client.headers["Authorization"] == "Bearer secret"
        finally:
            await remote.close()


class TestErrorClassification:
    """Test mapping of failures to client exceptions"""

    @pytest.mark.parametrize("status, error", [
        (404, ResourceNotFoundError),
        (405, ResourceNotFoundError),
        (400, SnapshotValidationError),
        (413, SnapshotValidationError),
        (500, TransientRemoteError),
        (503, TransientRemoteError),
    ])
    @pytest.mark.asyncio
    async def test_status_codes(self, config, make_snapshot, status, error):
        """Test each status class"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"success": False, "error": "nope"})

        with pytest.raises(error):
            await make_client(config, handler).autosave(make_snapshot())

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, config, make_snapshot):
        """Test connection failures"""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientRemoteError):
            await make_client(config, handler).autosave(make_snapshot())

    @pytest.mark.asyncio
    async def test_success_false_is_transient(self, config, make_snapshot):
        """Test a 200 answer reporting failure"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "db locked"})

        with pytest.raises(TransientRemoteError, match="db locked"):
            await make_client(config, handler).autosave(make_snapshot())

    @pytest.mark.asyncio
    async def test_health(self, config):
        """Test the health probe"""
        def healthy(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/health"
            return httpx.Response(200, json={"status": "healthy"})

        def degraded(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"status": "degraded"})

        assert await make_client(config, healthy).health()
        assert not await make_client(config, degraded).health()
