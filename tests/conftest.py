"""
UI Studio - Client Test Configuration and Fixtures
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from faker import Faker

from studio.config import StudioConfig
from studio.connectivity import ConnectivityMonitor
from studio.editor import InMemoryEditor
from studio.local_store import LocalStore
from studio.models import Snapshot, SaveTrigger
from studio.persistence import PendingSaveQueue, PersistenceClient
from studio.remote import HistoryPage
from studio.version_history import VersionHistoryStore

fake = Faker()

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path) -> StudioConfig:
    """Config with short timers and no backoff waits"""
    return StudioConfig(
        autosave_delay=0.05,
        chat_save_delay=0.01,
        teardown_timeout=1.0,
        max_versions=50,
        max_retries=3,
        retry_base_delay=0,
        replay_pause=0,
        probe_interval=0.01,
        config_dir=str(tmp_path),
        local_store_dir=str(tmp_path / "local_store"),
    )


@pytest.fixture
def session_id() -> str:
    return f"session-{fake.uuid4()}"


@pytest.fixture
def editor(session_id) -> InMemoryEditor:
    return InMemoryEditor(session_id=session_id)


@pytest.fixture
def store(config) -> LocalStore:
    return LocalStore(config.local_store_dir)


@pytest.fixture
def connectivity(config) -> ConnectivityMonitor:
    return ConnectivityMonitor(config)


@pytest.fixture
def remote() -> MagicMock:
    """Remote client double; every call succeeds and finds nothing to restore"""
    mock = MagicMock()
    mock.autosave = AsyncMock(return_value={"success": True})
    mock.autosave_history = AsyncMock(return_value=HistoryPage())
    mock.restore_session = AsyncMock()
    mock.health = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def pending(store) -> PendingSaveQueue:
    return PendingSaveQueue(store)


@pytest.fixture
def persistence(config, remote, store, connectivity, pending) -> PersistenceClient:
    return PersistenceClient(config, remote, store, connectivity, pending)


@pytest.fixture
def history() -> VersionHistoryStore:
    return VersionHistoryStore(max_versions=50)


@pytest.fixture
def make_snapshot(session_id):
    """Factory for snapshots spaced one second apart"""
    counter = {"n": 0}

    def _make(code: str = None, styles: str = "body { margin: 0; }", sid: str = None,
              offset: int = None, trigger: SaveTrigger = SaveTrigger.AUTO) -> Snapshot:
        n = counter["n"] if offset is None else offset
        counter["n"] += 1
        return Snapshot.create(
            session_id=sid or session_id,
            code=code if code is not None else f"<div>{fake.word()}</div>",
            styles=styles,
            trigger=trigger,
            created_at=BASE_TIME + timedelta(seconds=n),
        )

    return _make
