"""
Unit Tests for the Studio Engine
Tests for: history navigation, diffing versions, restore flow, sync
"""
import pytest

from studio.engine import StudioEngine
from studio.exceptions import ResourceNotFoundError
from studio.models import SaveOutcome, SaveTrigger, RestoreSource
from studio.connectivity import ConnectivityMonitor


@pytest.fixture
async def engine(config, editor, remote, store, connectivity):
    remote.restore_session.side_effect = ResourceNotFoundError("session", "none")
    engine = StudioEngine(config, editor, remote=remote, store=store, connectivity=connectivity)
    await engine.start()
    yield engine
    await engine.close()


async def save_versions(engine, editor, codes):
    for code in codes:
        editor.code = code
        await engine.force_save(f"Saved {code}")


class TestHistoryNavigation:
    """Test undo/redo through the engine"""

    @pytest.mark.asyncio
    async def test_undo_redo_updates_editor(self, engine, editor):
        """Test navigation writes the shown version into the editor"""
        await save_versions(engine, editor, ["<p>1</p>", "<p>2</p>", "<p>3</p>"])

        assert (await engine.undo()).code == "<p>2</p>"
        assert editor.code == "<p>2</p>"
        assert (await engine.redo()).code == "<p>3</p>"
        assert editor.code == "<p>3</p>"

        state = engine.undo_redo_state()
        assert state.total_versions == 3
        assert state.current_index == 2

    @pytest.mark.asyncio
    async def test_shown_version_is_not_autosaved(self, engine, editor):
        """Test undo does not schedule a save that would drop the redo branch"""
        await save_versions(engine, editor, ["<p>1</p>", "<p>2</p>"])

        await engine.undo()

        assert engine.schedule_autosave() is None
        assert engine.undo_redo_state().can_redo

    @pytest.mark.asyncio
    async def test_go_to_version(self, engine, editor):
        """Test jumping to a version"""
        await save_versions(engine, editor, ["<p>1</p>", "<p>2</p>", "<p>3</p>"])

        assert (await engine.go_to_version(0)).code == "<p>1</p>"
        assert (await engine.go_to_version(9)) is None
        assert editor.code == "<p>1</p>"

    @pytest.mark.asyncio
    async def test_undo_keeps_edit_waiting_on_timer(self, engine, editor, remote, store, session_id):
        """Test an edit still in its debounce window is saved before undo"""
        await save_versions(engine, editor, ["<p>1</p>", "<p>2</p>"])
        editor.code = "<p>3 typed</p>"
        assert engine.schedule_autosave() is not None

        shown = await engine.undo()

        assert shown.code == "<p>2</p>"
        assert editor.code == "<p>2</p>"
        assert [v.code for v in engine.list_versions()] == ["<p>1</p>", "<p>2</p>", "<p>3 typed</p>"]
        assert engine.undo_redo_state().can_redo
        saved = [call.args[0].code for call in remote.autosave.await_args_list]
        assert "<p>3 typed</p>" in saved
        assert engine.scheduler.pending_plan is None

        assert (await engine.redo()).code == "<p>3 typed</p>"

    @pytest.mark.asyncio
    async def test_list_versions(self, engine, editor, session_id):
        """Test listing versions for the current and another session"""
        await save_versions(engine, editor, ["<p>1</p>", "<p>2</p>"])

        assert [v.code for v in engine.list_versions()] == ["<p>1</p>", "<p>2</p>"]
        assert engine.list_versions(session_id) == engine.list_versions()
        assert engine.list_versions("elsewhere") == []


class TestDiffVersions:
    """Test comparing history versions"""

    @pytest.mark.asyncio
    async def test_diff_code(self, engine, editor):
        """Test a code diff between two versions"""
        await save_versions(engine, editor, ["a\nb", "a\nc"])

        result = engine.diff_versions(0, 1)

        assert len(result.modifications) == 1
        assert result.modifications[0].old_content == "b"

    @pytest.mark.asyncio
    async def test_diff_styles_and_missing_versions(self, engine, editor):
        """Test the styles field and out-of-range versions"""
        await save_versions(engine, editor, ["<p>1</p>"])

        assert engine.diff_versions(0, 0, field="styles").is_empty
        assert engine.diff_versions(0, 5) is None

    @pytest.mark.asyncio
    async def test_diff_unknown_field(self, engine):
        """Test an unsupported field"""
        with pytest.raises(ValueError):
            engine.diff_versions(0, 1, field="messages")


class TestRestoreFlow:
    """Test open, check and apply"""

    @pytest.mark.asyncio
    async def test_open_offers_local_copy_and_restore_saves(self, engine, editor, store, make_snapshot, session_id):
        """Test restoring a local copy into an empty editor"""
        previous = make_snapshot(code="<h1>Recovered</h1>")
        await store.write_session_mirror(previous)

        report = await engine.open_session()

        assert report.offered
        candidate = report.candidates[0]
        assert candidate.source == RestoreSource.LOCAL_FALLBACK

        outcome = await engine.apply_restore_candidate(candidate)

        assert outcome == SaveOutcome.SAVED_REMOTE
        assert editor.code == "<h1>Recovered</h1>"
        latest = engine.list_versions()[-1]
        assert latest.trigger == SaveTrigger.MANUAL
        assert latest.description.startswith("Restored version from ")

    @pytest.mark.asyncio
    async def test_open_with_live_content_sets_baseline(self, engine, editor, session_id):
        """Test nothing is offered and existing content is not re-saved"""
        editor.code = "<p>already here</p>"

        report = await engine.open_session()

        assert not report.offered
        assert engine.schedule_autosave() is None

    @pytest.mark.asyncio
    async def test_check_for_recoverable_sessions(self, engine, store, make_snapshot):
        """Test candidates for another session"""
        await store.write_fallback(make_snapshot(sid="older-session"))

        candidates = await engine.check_for_recoverable_sessions("older-session")

        assert len(candidates) == 1
        assert candidates[0].id.startswith("autosave_older-session_")


class TestSync:
    """Test sync and startup replay"""

    @pytest.mark.asyncio
    async def test_sync_now_replays_after_probe(self, config, editor, remote, store):
        """Test sync while offline probes the remote then replays"""
        connectivity = ConnectivityMonitor(config, online=False)
        engine = StudioEngine(config, editor, remote=remote, store=store, connectivity=connectivity)
        await engine.start()
        try:
            editor.code = "<p>offline work</p>"
            assert await engine.force_save() == SaveOutcome.QUEUED_OFFLINE
            assert engine.pending_count == 1

            report = await engine.sync_now()

            assert connectivity.is_online
            assert report.persisted == 1
            assert engine.pending_count == 0
            remote.autosave.assert_awaited_once()
        finally:
            await engine.close()

    @pytest.mark.asyncio
    async def test_sync_now_stays_offline(self, config, editor, remote, store):
        """Test sync when the remote is still unreachable"""
        remote.health.return_value = False
        connectivity = ConnectivityMonitor(config, online=False)
        async with StudioEngine(config, editor, remote=remote, store=store, connectivity=connectivity) as engine:
            editor.code = "<p>offline work</p>"
            await engine.force_save()

            report = await engine.sync_now()

            assert report.remaining == 1
            remote.autosave.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_releases_remote(self, config, editor, remote, store, connectivity):
        """Test close tears down and closes the HTTP client"""
        engine = StudioEngine(config, editor, remote=remote, store=store, connectivity=connectivity)
        await engine.start()
        editor.code = "<p>unsaved</p>"

        await engine.close()

        assert engine.list_versions()[-1].description == "Saved before closing"
        remote.close.assert_awaited_once()
