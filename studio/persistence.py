"""
Persistence Client - durable storage of snapshots

Save path for one snapshot:
1. Reject malformed snapshots outright (never retried or queued)
2. Refresh the local session mirror
3. Offline -> queue for replay
4. Remote write; "not found" -> local fallback copy
5. Transient failure -> retry with exponential backoff, then queue

Queued snapshots are replayed in creation order when connectivity returns.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, List, Dict

from studio.config import StudioConfig
from studio.connectivity import ConnectivityMonitor
from studio.exceptions import (
    TransientRemoteError,
    ResourceNotFoundError,
    SnapshotValidationError,
    LocalStoreError,
)
from studio.local_store import LocalStore, pending_key, PENDING_PREFIX
from studio.models import Snapshot, SaveOutcome
from studio.remote import RemoteAutosaveClient
from studio.logging_config import logger, set_session_id


@dataclass
class ReplayReport:
    """Result of one replay pass over the pending saves"""
    attempted: int = 0
    persisted: int = 0
    remaining: int = 0
    skipped: bool = False


class PendingSaveQueue:
    """
    Snapshots waiting for a confirmed remote write, grouped by session.

    The in-memory copy is authoritative for this process; every change is
    written through to the local store under pending_<session_id> so the
    queue survives a restart. A failed write-through is logged and the
    snapshot stays queued in memory.
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self._pending: Dict[str, List[Snapshot]] = {}
        self._loaded = False

    async def load(self) -> int:
        """Read queued snapshots left behind by a previous run"""
        if self._loaded:
            return self.count()
        self._loaded = True
        try:
            keys = await self.store.keys(PENDING_PREFIX)
        except LocalStoreError as e:
            logger.warning(f"Could not list pending saves: {e.message}")
            return 0

        for key in keys:
            session_id = key[len(PENDING_PREFIX):]
            try:
                items = await self.store.get(key) or []
            except LocalStoreError as e:
                logger.warning(f"Could not read pending saves for {session_id}: {e.message}")
                continue
            for item in items:
                try:
                    self._insert(Snapshot.from_dict(item))
                except SnapshotValidationError as e:
                    logger.warning(f"Dropping unreadable pending save: {e.message}")
        return self.count()

    def _insert(self, snapshot: Snapshot) -> bool:
        queue = self._pending.setdefault(snapshot.session_id, [])
        if any(s.id == snapshot.id for s in queue):
            return False
        queue.append(snapshot)
        queue.sort(key=lambda s: s.created_at)
        return True

    async def add(self, snapshot: Snapshot) -> None:
        async with self.store.lock(snapshot.session_id):
            if self._insert(snapshot):
                await self._write_through(snapshot.session_id)

    async def remove(self, session_id: str, snapshot_id: str) -> bool:
        async with self.store.lock(session_id):
            queue = self._pending.get(session_id, [])
            remaining = [s for s in queue if s.id != snapshot_id]
            if len(remaining) == len(queue):
                return False
            self._pending[session_id] = remaining
            await self._write_through(session_id)
            return True

    async def _write_through(self, session_id: str) -> None:
        queue = self._pending.get(session_id, [])
        try:
            if queue:
                await self.store.set(pending_key(session_id), [s.to_dict() for s in queue])
            else:
                await self.store.delete(pending_key(session_id))
        except LocalStoreError as e:
            logger.warning(f"Pending saves for {session_id} kept in memory only: {e.message}")

    def snapshots(self, session_id: Optional[str] = None) -> List[Snapshot]:
        """Queued snapshots in creation order, for one session or all of them"""
        if session_id is not None:
            return list(self._pending.get(session_id, []))
        merged = [s for queue in self._pending.values() for s in queue]
        return sorted(merged, key=lambda s: s.created_at)

    def count(self, session_id: Optional[str] = None) -> int:
        return len(self.snapshots(session_id))

    def contains(self, snapshot_id: str) -> bool:
        return any(s.id == snapshot_id for queue in self._pending.values() for s in queue)


class PersistenceClient:
    """
    Stores snapshots remotely with retry, local fallback and offline queue.

    Usage:
        client = PersistenceClient(config, remote, store, connectivity)
        outcome = await client.save(snapshot)

        connectivity.on_restored(client.replay_pending)
    """

    def __init__(
        self,
        config: StudioConfig,
        remote: RemoteAutosaveClient,
        store: LocalStore,
        connectivity: ConnectivityMonitor,
        pending: Optional[PendingSaveQueue] = None
    ):
        self.config = config
        self.remote = remote
        self.store = store
        self.connectivity = connectivity
        self.pending = pending or PendingSaveQueue(store)
        self._replaying = False

    def _get_backoff_delay(self, attempt: int) -> float:
        return self.config.retry_base_delay * (2 ** attempt)

    async def save(self, snapshot: Snapshot) -> SaveOutcome:
        """Persist one snapshot; never raises"""
        set_session_id(getattr(snapshot, "session_id", "") or "")

        try:
            snapshot.validate()
        except SnapshotValidationError as e:
            logger.log_save_event(snapshot.session_id, SaveOutcome.REJECTED.value,
                                  str(getattr(snapshot.trigger, "value", snapshot.trigger)),
                                  snapshot_id=snapshot.id, reason=e.message)
            return SaveOutcome.REJECTED

        await self._mirror(snapshot)

        if not self.connectivity.is_online:
            return await self._queue(snapshot)

        attempt = 0
        while True:
            try:
                await self.remote.autosave(snapshot)
            except ResourceNotFoundError:
                return await self._save_local(snapshot)
            except SnapshotValidationError as e:
                await self.pending.remove(snapshot.session_id, snapshot.id)
                logger.log_save_event(snapshot.session_id, SaveOutcome.REJECTED.value,
                                      snapshot.trigger.value, snapshot_id=snapshot.id,
                                      reason=e.message)
                return SaveOutcome.REJECTED
            except TransientRemoteError as e:
                if not self.connectivity.is_online or attempt >= self.config.max_retries:
                    logger.warning(f"Giving up on remote save of {snapshot.id}: {e.message}")
                    return await self._queue(snapshot)

                delay = self._get_backoff_delay(attempt)
                attempt += 1
                logger.info(
                    f"Remote save failed ({e.message}); retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.config.max_retries})"
                )
                await asyncio.sleep(delay)
                if not self.connectivity.is_online:
                    return await self._queue(snapshot)
            else:
                await self.pending.remove(snapshot.session_id, snapshot.id)
                logger.log_save_event(snapshot.session_id, SaveOutcome.SAVED_REMOTE.value,
                                      snapshot.trigger.value, snapshot_id=snapshot.id,
                                      attempts=attempt + 1)
                return SaveOutcome.SAVED_REMOTE

    async def _mirror(self, snapshot: Snapshot) -> None:
        try:
            await self.store.write_session_mirror(snapshot)
        except LocalStoreError as e:
            logger.warning(f"Could not update local session mirror: {e.message}")

    async def _save_local(self, snapshot: Snapshot) -> SaveOutcome:
        """Degraded mode for backends without the autosave endpoint"""
        try:
            key = await self.store.write_fallback(snapshot)
        except LocalStoreError as e:
            logger.warning(f"Local fallback failed for {snapshot.id}: {e.message}")
            return await self._queue(snapshot)

        await self.pending.remove(snapshot.session_id, snapshot.id)
        logger.log_save_event(snapshot.session_id, SaveOutcome.SAVED_LOCAL.value,
                              snapshot.trigger.value, snapshot_id=snapshot.id, local_key=key)
        return SaveOutcome.SAVED_LOCAL

    async def _queue(self, snapshot: Snapshot) -> SaveOutcome:
        await self.pending.add(snapshot)
        logger.log_save_event(snapshot.session_id, SaveOutcome.QUEUED_OFFLINE.value,
                              snapshot.trigger.value, snapshot_id=snapshot.id,
                              pending=self.pending.count())
        return SaveOutcome.QUEUED_OFFLINE

    @property
    def is_replaying(self) -> bool:
        return self._replaying

    async def replay_pending(self) -> ReplayReport:
        """
        Re-send queued snapshots one at a time in creation order.

        Only one replay runs at a time; a call made while another replay is
        in progress returns immediately with skipped=True. Stops early when
        connectivity drops.
        """
        if self._replaying:
            return ReplayReport(remaining=self.pending.count(), skipped=True)

        self._replaying = True
        report = ReplayReport()
        try:
            await self.pending.load()
            for index, snapshot in enumerate(self.pending.snapshots()):
                if not self.connectivity.is_online:
                    break
                if index > 0 and self.config.replay_pause > 0:
                    await asyncio.sleep(self.config.replay_pause)
                    if not self.connectivity.is_online:
                        break

                outcome = await self.save(snapshot)
                report.attempted += 1
                if outcome.is_saved:
                    report.persisted += 1
        finally:
            self._replaying = False

        report.remaining = self.pending.count()
        logger.log_replay(report.attempted, report.persisted, report.remaining)
        return report
