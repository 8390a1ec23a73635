"""
Local Store - client-side persistent key/value store

One JSON file per key under the local store directory:

    session_<sessionId>                latest full-session snapshot
    autosave_<sessionId>_<timestamp>   fallback copies written when the
                                       remote store has no autosave endpoint
    pending_<sessionId>                saves waiting for remote replay

Writes go to a temp file first and are moved into place, so a crash never
leaves half a value behind. Read-modify-write sequences for one session
must hold lock(session_id).
"""

import json
import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Optional, Dict, Any, List
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from studio.exceptions import LocalStoreError, SnapshotValidationError
from studio.models import Snapshot
from studio.logging_config import logger


SESSION_PREFIX = "session_"
AUTOSAVE_PREFIX = "autosave_"
PENDING_PREFIX = "pending_"


def session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def autosave_key(session_id: str, timestamp_ms: int) -> str:
    return f"{AUTOSAVE_PREFIX}{session_id}_{timestamp_ms}"


def pending_key(session_id: str) -> str:
    return f"{PENDING_PREFIX}{session_id}"


def parse_autosave_key(key: str, session_id: str) -> Optional[int]:
    """Timestamp of an autosave key belonging to session_id, else None"""
    prefix = f"{AUTOSAVE_PREFIX}{session_id}_"
    if not key.startswith(prefix):
        return None
    rest = key[len(prefix):]
    return int(rest) if rest.isdigit() else None


class LocalStore:
    """
    File-backed key/value store for snapshots.

    Usage:
        store = LocalStore(Path("~/.studio/local_store").expanduser())

        await store.write_session_mirror(snapshot)
        key = await store.write_fallback(snapshot)
        snapshots = await store.fallback_snapshots(session_id)
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock(self, session_id: str) -> asyncio.Lock:
        """Lock guarding one session's key range"""
        return self._locks[session_id]

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    # ==================== RAW KEY/VALUE ====================

    async def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not await aiofiles.os.path.exists(path):
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise LocalStoreError(f"Failed to read local key {key}: {e}", key=key) from e

    async def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(value, default=str))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise LocalStoreError(f"Failed to write local key {key}: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalStoreError(f"Failed to delete local key {key}: {e}", key=key) from e

    async def keys(self, prefix: str = "") -> List[str]:
        try:
            names = await aiofiles.os.listdir(self.root)
        except FileNotFoundError:
            return []
        keys = [unquote(name[:-len(".json")]) for name in names if name.endswith(".json")]
        return sorted(key for key in keys if key.startswith(prefix))

    # ==================== SNAPSHOT HELPERS ====================

    async def write_session_mirror(self, snapshot: Snapshot) -> None:
        """Keep session_<id> pointing at the newest snapshot seen for the session"""
        async with self.lock(snapshot.session_id):
            current = await self.read_session_mirror(snapshot.session_id)
            if current and current.created_at > snapshot.created_at:
                return
            await self.set(session_key(snapshot.session_id), snapshot.to_dict())

    async def read_session_mirror(self, session_id: str) -> Optional[Snapshot]:
        data = await self.get(session_key(session_id))
        return self._load_snapshot(data, session_key(session_id))

    async def write_fallback(self, snapshot: Snapshot) -> str:
        """Store a snapshot under autosave_<session>_<ms>; returns the key"""
        async with self.lock(snapshot.session_id):
            timestamp_ms = snapshot.timestamp_ms
            while True:
                key = autosave_key(snapshot.session_id, timestamp_ms)
                existing = await self.get(key)
                if existing is None or existing.get("id") == snapshot.id:
                    break
                timestamp_ms += 1
            await self.set(key, snapshot.to_dict())
        logger.debug(f"Wrote local fallback {key}")
        return key

    async def fallback_keys(self, session_id: str) -> List[str]:
        keys = await self.keys(f"{AUTOSAVE_PREFIX}{session_id}_")
        matching = [k for k in keys if parse_autosave_key(k, session_id) is not None]
        return sorted(matching, key=lambda k: parse_autosave_key(k, session_id))

    async def fallback_snapshots(self, session_id: str) -> List[Snapshot]:
        """Fallback snapshots of a session, oldest first"""
        snapshots = []
        for key in await self.fallback_keys(session_id):
            snapshot = self._load_snapshot(await self.get(key), key)
            if snapshot:
                snapshots.append(snapshot)
        return snapshots

    async def cleanup_session(self, session_id: str, include_pending: bool = False) -> int:
        """Remove the session's mirror and fallback copies; returns keys removed"""
        removed = 0
        async with self.lock(session_id):
            for key in await self.fallback_keys(session_id):
                removed += int(await self.delete(key))
            removed += int(await self.delete(session_key(session_id)))
            if include_pending:
                removed += int(await self.delete(pending_key(session_id)))
        logger.info(f"Removed {removed} local key(s) for session {session_id}")
        return removed

    @staticmethod
    def _load_snapshot(data: Optional[Dict[str, Any]], key: str) -> Optional[Snapshot]:
        if not data:
            return None
        try:
            return Snapshot.from_dict(data)
        except SnapshotValidationError as e:
            logger.warning(f"Skipping unreadable local snapshot {key}: {e.message}")
            return None
