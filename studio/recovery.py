"""
Recovery Coordinator - finds prior states of a session on open

Sources, queried concurrently:
1. Remote autosave log (most recent entries)
2. Remote session record
3. Local store: session mirror, fallback copies and queued pending saves

A failing source is logged and skipped; "not found" simply means the source
has nothing to offer.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Callable, Awaitable

from studio.config import StudioConfig
from studio.connectivity import ConnectivityMonitor
from studio.editor import EditorBridge
from studio.exceptions import ResourceNotFoundError, StudioError
from studio.local_store import LocalStore, session_key, autosave_key, pending_key
from studio.models import RestoreCandidate, RestoreSource, rank_candidates
from studio.persistence import PendingSaveQueue
from studio.remote import RemoteAutosaveClient
from studio.logging_config import logger, set_session_id


class RecoveryStatus(str, Enum):
    READY = "ready"
    NOTHING_TO_RESTORE = "nothing-to-restore"
    DEGRADED = "degraded"


@dataclass
class RecoveryReport:
    """What open_session found for a session"""
    session_id: str
    candidates: List[RestoreCandidate] = field(default_factory=list)
    offered: bool = False
    degraded: bool = False
    failed_sources: List[str] = field(default_factory=list)

    @property
    def status(self) -> RecoveryStatus:
        if self.degraded:
            return RecoveryStatus.DEGRADED
        if self.candidates:
            return RecoveryStatus.READY
        return RecoveryStatus.NOTHING_TO_RESTORE


CandidateCallback = Callable[[List[RestoreCandidate]], Awaitable[None]]


class _SourceFailed(Exception):
    """Marks a source that could not be read at all"""


class RecoveryCoordinator:
    """
    Usage:
        coordinator = RecoveryCoordinator(config, remote, store, pending, connectivity, editor)
        report = await coordinator.open_session(session_id)
        if report.offered:
            await coordinator.apply_restore_candidate(report.candidates[0])
    """

    SOURCE_NAMES = ("remote-history", "remote-session", "local")

    def __init__(
        self,
        config: StudioConfig,
        remote: RemoteAutosaveClient,
        store: LocalStore,
        pending: PendingSaveQueue,
        connectivity: ConnectivityMonitor,
        editor: EditorBridge,
        on_candidates: Optional[CandidateCallback] = None
    ):
        self.config = config
        self.remote = remote
        self.store = store
        self.pending = pending
        self.connectivity = connectivity
        self.editor = editor
        self.on_candidates = on_candidates

    # ==================== SOURCES ====================

    async def _remote_history(self, session_id: str) -> List[RestoreCandidate]:
        if not self.connectivity.is_online:
            raise _SourceFailed("offline")
        try:
            page = await self.remote.autosave_history(
                session_id, limit=self.config.recovery_history_limit
            )
        except ResourceNotFoundError:
            return []
        return [
            RestoreCandidate(
                id=f"autosave:{snapshot.id}",
                source=RestoreSource.REMOTE_AUTOSAVE,
                timestamp=snapshot.created_at,
                snapshot=snapshot
            )
            for snapshot in page.snapshots
        ]

    async def _remote_session(self, session_id: str) -> List[RestoreCandidate]:
        if not self.connectivity.is_online:
            raise _SourceFailed("offline")
        try:
            snapshot = await self.remote.restore_session(session_id)
        except ResourceNotFoundError:
            return []
        if snapshot.code_length == 0 and snapshot.styles_length == 0:
            return []
        return [RestoreCandidate(
            id=f"session:{session_id}",
            source=RestoreSource.REMOTE_SESSION,
            timestamp=snapshot.created_at,
            snapshot=snapshot
        )]

    async def _local(self, session_id: str) -> List[RestoreCandidate]:
        candidates = []

        mirror = await self.store.read_session_mirror(session_id)
        if mirror:
            candidates.append(RestoreCandidate(
                id=session_key(session_id),
                source=RestoreSource.LOCAL_FALLBACK,
                timestamp=mirror.created_at,
                snapshot=mirror
            ))

        for snapshot in await self.store.fallback_snapshots(session_id):
            candidates.append(RestoreCandidate(
                id=autosave_key(session_id, snapshot.timestamp_ms),
                source=RestoreSource.LOCAL_FALLBACK,
                timestamp=snapshot.created_at,
                snapshot=snapshot
            ))

        await self.pending.load()
        for snapshot in self.pending.snapshots(session_id):
            candidates.append(RestoreCandidate(
                id=f"{pending_key(session_id)}:{snapshot.id}",
                source=RestoreSource.LOCAL_FALLBACK,
                timestamp=snapshot.created_at,
                snapshot=snapshot
            ))
        return candidates

    # ==================== RECOVERY ====================

    async def _gather(self, session_id: str):
        results = await asyncio.gather(
            self._remote_history(session_id),
            self._remote_session(session_id),
            self._local(session_id),
            return_exceptions=True
        )

        candidates: List[RestoreCandidate] = []
        failed: List[str] = []
        for name, result in zip(self.SOURCE_NAMES, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                failed.append(name)
                message = result.message if isinstance(result, StudioError) else str(result)
                logger.warning(f"Recovery source {name} unavailable for {session_id}: {message}")
                continue
            candidates.extend(result)

        return self._dedupe(rank_candidates(candidates)), failed

    @staticmethod
    def _dedupe(ranked: List[RestoreCandidate]) -> List[RestoreCandidate]:
        """Keep the best-ranked candidate per snapshot id"""
        seen = set()
        unique = []
        for candidate in ranked:
            if candidate.snapshot.id in seen:
                continue
            seen.add(candidate.snapshot.id)
            unique.append(candidate)
        return unique

    async def check_for_recoverable_sessions(self, session_id: str) -> List[RestoreCandidate]:
        """Restore candidates for a session, newest first"""
        set_session_id(session_id)
        candidates, _ = await self._gather(session_id)
        return candidates

    async def open_session(self, session_id: str) -> RecoveryReport:
        """
        Look for recoverable state when a session is opened. Candidates are
        offered only when the live editor is still empty.
        """
        set_session_id(session_id)
        candidates, failed = await self._gather(session_id)

        report = RecoveryReport(
            session_id=session_id,
            candidates=candidates,
            failed_sources=failed,
            degraded=len(failed) == len(self.SOURCE_NAMES)
        )

        live = self.editor.read_live_editor_state()
        if candidates and live.is_empty:
            report.offered = True
            if self.on_candidates:
                try:
                    await self.on_candidates(candidates)
                except Exception as e:
                    logger.log_error_with_context(e, context="recovery candidates callback")

        logger.log_recovery(session_id, len(candidates), report.degraded)
        return report

    async def apply_restore_candidate(self, candidate: RestoreCandidate) -> None:
        """Load a candidate into the live editor, replaying its chat messages"""
        snapshot = candidate.snapshot
        self.editor.write_live_editor_state(snapshot.code, snapshot.styles)
        if snapshot.messages:
            self.editor.append_chat_messages(list(snapshot.messages))
        logger.info(
            f"Restored {candidate.source.value} candidate {candidate.id} "
            f"from {candidate.timestamp.isoformat()}"
        )
