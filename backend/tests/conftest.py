"""
UI Studio Autosave Backend - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, Dict, Any
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from faker import Faker

# Set testing environment
os.environ['TESTING'] = 'true'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test_autosave.db'
os.environ['AUTOSAVE_CLEANUP_ON_APPEND'] = 'false'

from app.main import app
from app.core.database import Base, get_db
from app.models.autosave import AutoSave

fake = Faker()

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test_autosave.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSessionLocal = sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def session_id() -> str:
    return f"session-{fake.uuid4()}"


@pytest.fixture
def snapshot_payload(session_id: str) -> Callable[..., Dict[str, Any]]:
    """Factory for autosave request bodies, one second apart"""
    counter = {"n": 0}

    def _make(**overrides) -> Dict[str, Any]:
        n = counter["n"]
        counter["n"] += 1
        payload = {
            "id": fake.uuid4().replace("-", ""),
            "sessionId": session_id,
            "code": f"<section><h1>{fake.sentence()}</h1></section>",
            "styles": "h1 { font-size: 2rem; }",
            "description": "Auto-saved code changes",
            "isAutoSave": True,
            "trigger": "auto",
            "messageCount": 0,
            "createdAt": (BASE_TIME + timedelta(seconds=n)).isoformat() + "Z",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def add_entries(db_session: AsyncSession, session_id: str):
    """Insert autosave rows directly; returns them oldest first"""
    async def _add(count: int, sid: str = None) -> list:
        entries = []
        for n in range(count):
            entry = AutoSave(
                session_id=sid or session_id,
                code=f"<p>{n}</p>",
                styles="",
                description=f"Version {n}",
                is_auto_save=n % 2 == 0,
                trigger="auto" if n % 2 == 0 else "manual",
                message_count=0,
                code_length=len(f"<p>{n}</p>"),
                styles_length=0,
                created_at=BASE_TIME + timedelta(seconds=n),
                received_at=BASE_TIME + timedelta(seconds=n),
            )
            db_session.add(entry)
            entries.append(entry)
        await db_session.commit()
        return entries

    return _add
