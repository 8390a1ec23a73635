"""
Autosave API Endpoints

Endpoints:
- POST   /sessions/autosave                       - Append a snapshot to the log
- GET    /sessions/autosave/{session_id}/history  - Newest entries first, paginated
- GET    /sessions/restore/{session_id}           - Live session record or one autosave
- GET    /sessions/stats/{session_id}             - Save statistics
- DELETE /sessions/cleanup/{session_id}           - Retention (keep newest N)
- POST   /sessions/bulk-restore                   - Session records of several sessions
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger, set_session_id
from app.schemas.autosave import (
    AutosaveCreate,
    AutosaveCreateResponse,
    AutosaveEntry,
    AutosaveHistoryResponse,
    AutosaveStats,
    BulkRestoreRequest,
    BulkRestoreResponse,
    CleanupResponse,
    Pagination,
    RestoreResponse,
    SessionData,
    StatsResponse,
)
from app.services.autosave_service import AutosaveService


router = APIRouter(prefix="/sessions", tags=["Autosave"])


@router.post("/autosave", response_model=AutosaveCreateResponse)
async def create_autosave(
    data: AutosaveCreate,
    db: AsyncSession = Depends(get_db)
):
    """Append an autosave; re-sending a stored id is a no-op"""
    set_session_id(data.session_id)
    entry, created = await AutosaveService(db).append(data)
    logger.log_autosave(data.session_id, entry.id, created, entry.trigger)

    return AutosaveCreateResponse(
        autosave_id=entry.id,
        timestamp=entry.created_at,
        created=created
    )


@router.get("/autosave/{session_id}/history", response_model=AutosaveHistoryResponse)
async def get_autosave_history(
    session_id: str,
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """Most recent autosaves of a session"""
    limit = min(limit, settings.AUTOSAVE_HISTORY_MAX_LIMIT)
    entries, total = await AutosaveService(db).history(session_id, limit=limit, offset=offset)

    return AutosaveHistoryResponse(
        history=[AutosaveEntry.model_validate(entry) for entry in entries],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(entries) < total
        )
    )


@router.get("/restore/{session_id}", response_model=RestoreResponse)
async def restore_session(
    session_id: str,
    autosave_id: Optional[str] = Query(None, alias="autosaveId"),
    db: AsyncSession = Depends(get_db)
):
    """Session data to restore from, the live record unless autosaveId is given"""
    data = await AutosaveService(db).restore(session_id, autosave_id)
    return RestoreResponse(session_data=SessionData(**data))


@router.get("/stats/{session_id}", response_model=StatsResponse)
async def get_autosave_stats(
    session_id: str,
    db: AsyncSession = Depends(get_db)
):
    stats = await AutosaveService(db).stats(session_id)
    return StatsResponse(stats=AutosaveStats(**stats))


@router.delete("/cleanup/{session_id}", response_model=CleanupResponse)
async def cleanup_autosaves(
    session_id: str,
    keep: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db)
):
    """Delete all but the newest `keep` autosaves of a session"""
    deleted, remaining = await AutosaveService(db).cleanup(
        session_id, keep or settings.AUTOSAVE_KEEP_COUNT
    )
    return CleanupResponse(deleted_count=deleted, remaining=remaining)


@router.post("/bulk-restore", response_model=BulkRestoreResponse)
async def bulk_restore_sessions(
    request: BulkRestoreRequest,
    db: AsyncSession = Depends(get_db)
):
    """Session records for a dashboard listing several sessions"""
    sessions = await AutosaveService(db).bulk_restore(request.session_ids)
    return BulkRestoreResponse(
        sessions={sid: SessionData(**data) for sid, data in sessions.items()},
        found=len(sessions),
        requested=len(request.session_ids)
    )
