"""
Unit Tests for the Recovery Coordinator
Tests for: candidate ranking, source failures, offering, applying
"""
from dataclasses import replace
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock

from studio.exceptions import ResourceNotFoundError, TransientRemoteError
from studio.models import RestoreCandidate, RestoreSource, rank_candidates
from studio.recovery import RecoveryCoordinator, RecoveryStatus
from studio.remote import HistoryPage


@pytest.fixture
def coordinator(config, remote, store, pending, connectivity, editor):
    remote.restore_session.side_effect = ResourceNotFoundError("session", "none")
    return RecoveryCoordinator(config, remote, store, pending, connectivity, editor)


class TestRanking:
    """Test candidate ordering"""

    def test_session_record_wins_timestamp_tie(self, make_snapshot):
        """Test remoteSession outranks localFallback at the same instant"""
        snapshot = make_snapshot()
        local = RestoreCandidate("session_x", RestoreSource.LOCAL_FALLBACK, snapshot.created_at, snapshot)
        remote = RestoreCandidate("session:x", RestoreSource.REMOTE_SESSION, snapshot.created_at, snapshot)

        ranked = rank_candidates([local, remote])

        assert [c.source for c in ranked] == [RestoreSource.REMOTE_SESSION, RestoreSource.LOCAL_FALLBACK]

    def test_full_tie_break_order(self, make_snapshot):
        """Test the complete source priority"""
        snapshot = make_snapshot()
        candidates = [
            RestoreCandidate("c", RestoreSource.LOCAL_FALLBACK, snapshot.created_at, snapshot),
            RestoreCandidate("b", RestoreSource.REMOTE_AUTOSAVE, snapshot.created_at, snapshot),
            RestoreCandidate("a", RestoreSource.REMOTE_SESSION, snapshot.created_at, snapshot),
        ]

        assert [c.id for c in rank_candidates(candidates)] == ["a", "b", "c"]

    def test_newer_beats_priority(self, make_snapshot):
        """Test that timestamp is compared before source"""
        snapshot = make_snapshot()
        older = RestoreCandidate("old", RestoreSource.REMOTE_SESSION, snapshot.created_at, snapshot)
        newer = RestoreCandidate("new", RestoreSource.LOCAL_FALLBACK,
                                 snapshot.created_at + timedelta(seconds=1), snapshot)

        assert rank_candidates([older, newer])[0].id == "new"


class TestGathering:
    """Test collecting candidates from every source"""

    @pytest.mark.asyncio
    async def test_coordinator_ranks_session_record_first(self, coordinator, remote, store, make_snapshot, session_id):
        """Test the coordinator applies the tie-break across sources"""
        snapshot = make_snapshot()
        await store.write_session_mirror(snapshot)
        remote.restore_session.side_effect = None
        remote.restore_session.return_value = snapshot.with_description("Session record")

        candidates = await coordinator.check_for_recoverable_sessions(session_id)

        assert len(candidates) == 1
        assert candidates[0].source == RestoreSource.REMOTE_SESSION
        assert candidates[0].id == f"session:{session_id}"

    @pytest.mark.asyncio
    async def test_all_sources_merged_newest_first(self, coordinator, remote, store, pending, make_snapshot, session_id):
        """Test one candidate from each source"""
        remote_entry = make_snapshot(offset=1)
        fallback = make_snapshot(offset=2)
        queued = make_snapshot(offset=3)
        remote.autosave_history.return_value = HistoryPage(snapshots=[remote_entry], total=1)
        await store.write_fallback(fallback)
        await pending.add(queued)

        candidates = await coordinator.check_for_recoverable_sessions(session_id)

        assert [c.snapshot.id for c in candidates] == [queued.id, fallback.id, remote_entry.id]
        assert candidates[0].id == f"pending_{session_id}:{queued.id}"
        assert candidates[2].id == f"autosave:{remote_entry.id}"

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped(self, coordinator, remote, store, make_snapshot, session_id):
        """Test a remote failure does not hide local candidates"""
        remote.autosave_history.side_effect = TransientRemoteError("502", status_code=502)
        snapshot = make_snapshot()
        await store.write_session_mirror(snapshot)

        report = await coordinator.open_session(session_id)

        assert report.failed_sources == ["remote-history"]
        assert not report.degraded
        assert [c.snapshot.id for c in report.candidates] == [snapshot.id]

    @pytest.mark.asyncio
    async def test_all_sources_failing_is_degraded(self, coordinator, connectivity, store, session_id):
        """Test the degraded state"""
        await connectivity.set_online(False)
        store.read_session_mirror = AsyncMock(side_effect=OSError("disk gone"))

        report = await coordinator.open_session(session_id)

        assert report.degraded
        assert report.status == RecoveryStatus.DEGRADED
        assert report.candidates == []

    @pytest.mark.asyncio
    async def test_nothing_to_restore(self, coordinator, session_id):
        """Test an empty session"""
        report = await coordinator.open_session(session_id)

        assert report.status == RecoveryStatus.NOTHING_TO_RESTORE
        assert not report.offered

    @pytest.mark.asyncio
    async def test_empty_session_record_is_ignored(self, coordinator, remote, make_snapshot, session_id):
        """Test a session record without code or styles"""
        remote.restore_session.side_effect = None
        remote.restore_session.return_value = make_snapshot(code="", styles="")

        assert await coordinator.check_for_recoverable_sessions(session_id) == []


class TestOffering:
    """Test offering and applying candidates"""

    @pytest.mark.asyncio
    async def test_offered_only_when_editor_empty(self, coordinator, store, editor, make_snapshot, session_id):
        """Test candidates are not offered over live content"""
        await store.write_session_mirror(make_snapshot())
        editor.code = "<main>typed already</main>"

        report = await coordinator.open_session(session_id)

        assert report.status == RecoveryStatus.READY
        assert not report.offered

    @pytest.mark.asyncio
    async def test_callback_receives_candidates(self, config, remote, store, pending, connectivity, editor, make_snapshot, session_id):
        """Test the candidates callback"""
        remote.restore_session.side_effect = ResourceNotFoundError("session", session_id)
        callback = AsyncMock()
        coordinator = RecoveryCoordinator(config, remote, store, pending, connectivity, editor,
                                          on_candidates=callback)
        await store.write_session_mirror(make_snapshot())

        report = await coordinator.open_session(session_id)

        assert report.offered
        callback.assert_awaited_once_with(report.candidates)

    @pytest.mark.asyncio
    async def test_apply_restores_code_styles_and_messages(self, coordinator, editor, make_snapshot):
        """Test applying a candidate to the editor"""
        snapshot = make_snapshot(code="<h1>Restored</h1>", styles="h1 { color: red; }")
        snapshot = replace(snapshot, messages=({"role": "user", "content": "hi"},))
        candidate = RestoreCandidate("x", RestoreSource.REMOTE_AUTOSAVE, snapshot.created_at, snapshot)

        await coordinator.apply_restore_candidate(candidate)

        assert editor.code == "<h1>Restored</h1>"
        assert editor.styles == "h1 { color: red; }"
        assert editor.messages == [{"role": "user", "content": "hi"}]
