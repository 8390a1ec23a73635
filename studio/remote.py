"""
Remote Autosave Client - HTTP access to the backend's autosave log

Endpoints (relative to api_base_url):
    POST   /sessions/autosave
    GET    /sessions/autosave/{session_id}/history?limit=&offset=
    GET    /sessions/restore/{session_id}?autosaveId=
    DELETE /sessions/cleanup/{session_id}?keep=
    GET    /sessions/stats/{session_id}
    POST   /sessions/bulk-restore

Every failure is raised as one of TransientRemoteError,
ResourceNotFoundError or SnapshotValidationError.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

import httpx

from studio.config import StudioConfig
from studio.exceptions import (
    TransientRemoteError,
    ResourceNotFoundError,
    SnapshotValidationError,
)
from studio.models import Snapshot
from studio.logging_config import logger


NOT_FOUND_STATUSES = {404, 405, 501}
INVALID_STATUSES = {400, 413, 422}


@dataclass
class HistoryPage:
    """One page of the remote autosave log, newest first"""
    snapshots: List[Snapshot] = field(default_factory=list)
    total: int = 0
    limit: int = 0
    offset: int = 0
    has_more: bool = False


class RemoteAutosaveClient:
    """
    Async client for the remote persistence contract.

    Usage:
        async with RemoteAutosaveClient(config) as remote:
            await remote.autosave(snapshot)
            page = await remote.autosave_history(session_id, limit=10)
    """

    def __init__(self, config: StudioConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout,
            headers=self._headers()
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    async def __aenter__(self) -> "RemoteAutosaveClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        resource: str,
        resource_id: str,
        **kwargs
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"Timed out calling {method} {url}") from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"Could not reach remote store: {e}") from e

        if response.status_code in NOT_FOUND_STATUSES:
            raise ResourceNotFoundError(resource, resource_id)

        if response.status_code in INVALID_STATUSES:
            raise SnapshotValidationError(self._error_message(response))

        if response.status_code >= 400:
            raise TransientRemoteError(
                f"Remote store answered {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransientRemoteError(f"Malformed response from {method} {url}") from e

        if isinstance(data, dict) and data.get("success") is False:
            raise TransientRemoteError(data.get("error") or "Remote store reported failure")

        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            detail = data.get("error") or data.get("detail") or data.get("message")
            if detail:
                return str(detail)
        return response.text[:200]

    async def autosave(self, snapshot: Snapshot) -> Dict[str, Any]:
        """POST a snapshot to the autosave log"""
        data = await self._request(
            "POST", "/sessions/autosave", "autosave", snapshot.session_id,
            json=snapshot.to_dict()
        )
        logger.debug(f"Remote autosave accepted {snapshot.id}")
        return data

    async def autosave_history(
        self,
        session_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> HistoryPage:
        data = await self._request(
            "GET", f"/sessions/autosave/{session_id}/history", "session", session_id,
            params={"limit": limit, "offset": offset}
        )
        pagination = data.get("pagination", {})
        snapshots = []
        for item in data.get("history", []):
            try:
                snapshots.append(Snapshot.from_dict(item))
            except SnapshotValidationError as e:
                logger.warning(f"Skipping malformed remote autosave entry: {e.message}")
        return HistoryPage(
            snapshots=snapshots,
            total=pagination.get("total", len(snapshots)),
            limit=pagination.get("limit", limit),
            offset=pagination.get("offset", offset),
            has_more=pagination.get("hasMore", False)
        )

    async def restore_session(self, session_id: str, autosave_id: Optional[str] = None) -> Snapshot:
        """Fetch the current session record, or one autosave entry when autosave_id is given"""
        params = {"autosaveId": autosave_id} if autosave_id else None
        data = await self._request(
            "GET", f"/sessions/restore/{session_id}", "session", session_id,
            params=params
        )
        session_data = dict(data.get("sessionData") or {})
        session_data.setdefault("sessionId", session_id)
        session_data.setdefault("id", f"session-{session_id}")
        return Snapshot.from_dict(session_data)

    async def cleanup(self, session_id: str, keep_count: int = 100) -> Dict[str, Any]:
        return await self._request(
            "DELETE", f"/sessions/cleanup/{session_id}", "session", session_id,
            params={"keep": keep_count}
        )

    async def stats(self, session_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/sessions/stats/{session_id}", "session", session_id)
        return data.get("stats", {})

    async def bulk_restore(self, session_ids: List[str]) -> Dict[str, Any]:
        return await self._request(
            "POST", "/sessions/bulk-restore", "sessions", ",".join(session_ids),
            json={"sessionIds": session_ids}
        )

    async def health(self) -> bool:
        """True when the remote store answers its health check"""
        try:
            response = await self._client.get("/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
