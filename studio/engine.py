"""
Studio Engine - the surface the editor UI talks to

Wires the version history, autosave scheduler, persistence client and
recovery coordinator around one EditorBridge.
"""

import asyncio
from pathlib import Path
from typing import Optional, List

from studio.config import StudioConfig
from studio.connectivity import ConnectivityMonitor
from studio.diff_engine import DiffResult, compute_diff
from studio.editor import EditorBridge
from studio.local_store import LocalStore
from studio.models import (
    Snapshot,
    SaveOutcome,
    SaveStatus,
    ChangeKind,
    RestoreCandidate,
)
from studio.persistence import PersistenceClient, PendingSaveQueue, ReplayReport
from studio.recovery import RecoveryCoordinator, RecoveryReport
from studio.remote import RemoteAutosaveClient
from studio.scheduler import AutosaveScheduler, SavePlan
from studio.version_history import VersionHistoryStore, UndoRedoState
from studio.logging_config import logger


DIFF_FIELDS = ("code", "styles")


class StudioEngine:
    """
    Usage:
        async with StudioEngine(config, editor) as engine:
            await engine.open_session()
            engine.schedule_autosave(ChangeKind.CODE)
            await engine.force_save("Checkpoint")
            await engine.undo()
    """

    def __init__(
        self,
        config: StudioConfig,
        editor: EditorBridge,
        remote: Optional[RemoteAutosaveClient] = None,
        store: Optional[LocalStore] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        history: Optional[VersionHistoryStore] = None
    ):
        self.config = config
        self.editor = editor
        self.remote = remote or RemoteAutosaveClient(config)
        self.store = store or LocalStore(Path(config.local_store_dir))
        self.connectivity = connectivity or ConnectivityMonitor(config)
        self.history = history or VersionHistoryStore(config.max_versions)

        self.pending = PendingSaveQueue(self.store)
        self.persistence = PersistenceClient(
            config, self.remote, self.store, self.connectivity, self.pending
        )
        self.scheduler = AutosaveScheduler(config, editor, self.history, self.persistence)
        self.recovery = RecoveryCoordinator(
            config, self.remote, self.store, self.pending, self.connectivity, editor
        )

        self._replay_task: Optional[asyncio.Task] = None
        self._started = False
        self._syncing = False

    async def __aenter__(self) -> "StudioEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ==================== LIFECYCLE ====================

    async def start(self, probe: bool = False) -> None:
        """Load queued saves, hook replay to reconnects, optionally start probing"""
        if self._started:
            return
        self._started = True

        self.connectivity.on_restored(self._on_connectivity_restored)
        queued = await self.pending.load()
        if queued:
            logger.info(f"{queued} save(s) waiting from a previous run")
            if self.connectivity.is_online:
                self._replay_task = asyncio.create_task(self.persistence.replay_pending())

        if probe:
            self.connectivity.start_probe(self.remote.health)

    async def _on_connectivity_restored(self) -> None:
        if self._syncing:
            return
        await self.persistence.replay_pending()

    async def close(self) -> None:
        """Final save, then stop background work and release the HTTP client"""
        await self.scheduler.teardown()
        await self.connectivity.stop_probe()

        if self._replay_task and not self._replay_task.done():
            self._replay_task.cancel()
            try:
                await self._replay_task
            except asyncio.CancelledError:
                pass
        self._replay_task = None

        await self.remote.close()
        self._started = False

    # ==================== STATUS ====================

    @property
    def session_id(self) -> Optional[str]:
        return self.editor.get_current_session_id()

    @property
    def status(self) -> SaveStatus:
        return self.scheduler.status

    @property
    def pending_count(self) -> int:
        return self.pending.count()

    def undo_redo_state(self) -> UndoRedoState:
        if not self.session_id:
            return UndoRedoState()
        return self.history.state(self.session_id)

    # ==================== SAVING ====================

    def schedule_autosave(self, change_kind: Optional[ChangeKind] = None) -> Optional[SavePlan]:
        return self.scheduler.on_change(change_kind)

    async def force_save(self, description: str = "Manual save") -> Optional[SaveOutcome]:
        return await self.scheduler.force_save(description)

    async def sync_now(self) -> ReplayReport:
        """Probe the remote if offline, then replay whatever is still queued"""
        self._syncing = True
        try:
            if not self.connectivity.is_online:
                await self.connectivity.probe(self.remote.health)
            if not self.connectivity.is_online:
                return ReplayReport(remaining=self.pending.count())
            return await self.persistence.replay_pending()
        finally:
            self._syncing = False

    # ==================== HISTORY ====================

    async def _show_version(self, navigate) -> Optional[Snapshot]:
        if not self.session_id:
            return None
        # An edit still waiting on the debounce timer becomes a version first
        await self.scheduler.flush_pending()
        snapshot = navigate(self.session_id)
        if snapshot is None:
            return None
        self.editor.write_live_editor_state(snapshot.code, snapshot.styles)
        # The shown version is already in history; don't autosave it again
        self.scheduler.mark_saved(self.editor.read_live_editor_state())
        return snapshot

    async def undo(self) -> Optional[Snapshot]:
        return await self._show_version(self.history.undo)

    async def redo(self) -> Optional[Snapshot]:
        return await self._show_version(self.history.redo)

    async def go_to_version(self, index: int) -> Optional[Snapshot]:
        return await self._show_version(lambda session_id: self.history.go_to(session_id, index))

    def list_versions(self, session_id: Optional[str] = None) -> List[Snapshot]:
        session_id = session_id or self.session_id
        return self.history.entries(session_id) if session_id else []

    def diff_versions(self, a: int, b: int, field: str = "code") -> Optional[DiffResult]:
        """
        Line diff between history versions a and b of the current session.
        Returns None when either version does not exist.
        """
        if field not in DIFF_FIELDS:
            raise ValueError(f"Cannot diff field {field!r}; expected one of {DIFF_FIELDS}")
        if not self.session_id:
            return None

        old = self.history.get(self.session_id, a)
        new = self.history.get(self.session_id, b)
        if old is None or new is None:
            return None
        return compute_diff(getattr(old, field), getattr(new, field))

    # ==================== RECOVERY ====================

    async def open_session(self) -> Optional[RecoveryReport]:
        """
        Run recovery for the editor's session. When nothing is offered, the
        editor's current content becomes the autosave baseline.
        """
        if not self.session_id:
            return None
        report = await self.recovery.open_session(self.session_id)
        if not report.offered:
            self.scheduler.mark_saved(self.editor.read_live_editor_state())
        return report

    async def check_for_recoverable_sessions(self, session_id: Optional[str] = None) -> List[RestoreCandidate]:
        session_id = session_id or self.session_id
        if not session_id:
            return []
        return await self.recovery.check_for_recoverable_sessions(session_id)

    async def apply_restore_candidate(self, candidate: RestoreCandidate) -> Optional[SaveOutcome]:
        """Load a candidate and save it as the newest version"""
        await self.recovery.apply_restore_candidate(candidate)
        stamp = candidate.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        return await self.scheduler.force_save(f"Restored version from {stamp}")
