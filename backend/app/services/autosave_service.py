"""
Autosave Service - the per-session autosave log (autosaves table)
and the live session record (editor_sessions table).

Log entries are appended idempotently (keyed by the client's snapshot id),
listed newest first, and trimmed by retention cleanup.
"""

from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, delete, func, case

from app.core.config import settings
from app.core.exceptions import (
    AutosaveNotFoundError,
    SessionNotFoundError,
    SnapshotTooLargeError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.autosave import AutoSave, EditorSession
from app.schemas.autosave import AutosaveCreate


def to_naive_utc(value: Optional[datetime]) -> datetime:
    """Naive UTC datetime for storage; None means now"""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AutosaveService:
    """
    Service for the remote autosave log.

    Use cases:
    - Append a snapshot from the client's autosave (replays are no-ops)
    - Page through a session's history, newest first
    - Restore the live session record or one specific autosave
    - Retention: keep only the newest N entries of a session
    - Save statistics per session
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== APPEND ====================

    async def append(self, data: AutosaveCreate) -> Tuple[AutoSave, bool]:
        """
        Store an autosave and upsert the session record.

        Returns:
            (entry, created) - created is False when the id was already stored
        """
        size = len(data.code.encode("utf-8")) + len(data.styles.encode("utf-8"))
        if size > settings.AUTOSAVE_MAX_SNAPSHOT_BYTES:
            raise SnapshotTooLargeError(size, settings.AUTOSAVE_MAX_SNAPSHOT_BYTES)

        if data.id:
            existing = await self._get_existing(data.id, data.session_id)
            if existing:
                return existing, False

        created_at = to_naive_utc(data.created_at)
        messages = data.messages or None

        entry = AutoSave(
            session_id=data.session_id,
            code=data.code,
            styles=data.styles,
            messages=messages,
            description=data.description,
            is_auto_save=data.is_auto_save,
            trigger=data.trigger,
            message_count=data.message_count or len(data.messages or []),
            code_length=len(data.code),
            styles_length=len(data.styles),
            created_at=created_at,
            received_at=datetime.utcnow()
        )
        if data.id:
            entry.id = data.id

        self.db.add(entry)
        await self._upsert_session(entry)

        try:
            await self.db.commit()
        except IntegrityError:
            # Same id stored concurrently
            await self.db.rollback()
            existing = await self._get_existing(data.id, data.session_id) if data.id else None
            if existing is None:
                raise
            return existing, False

        await self.db.refresh(entry)

        if settings.AUTOSAVE_CLEANUP_ON_APPEND:
            await self.cleanup(data.session_id, settings.AUTOSAVE_KEEP_COUNT)

        return entry, True

    async def _get_existing(self, autosave_id: str, session_id: str) -> Optional[AutoSave]:
        existing = await self.db.get(AutoSave, autosave_id)
        if existing is not None and existing.session_id != session_id:
            raise ValidationError(
                f"Autosave id '{autosave_id}' belongs to another session", field="id"
            )
        return existing

    async def _upsert_session(self, entry: AutoSave) -> None:
        """Apply the entry to the session record unless the record is newer"""
        record = await self.db.get(EditorSession, entry.session_id)
        if record is None:
            record = EditorSession(session_id=entry.session_id, created_at=datetime.utcnow())
            self.db.add(record)
        elif record.last_saved and record.last_saved > entry.created_at:
            return

        record.code = entry.code
        record.styles = entry.styles
        if entry.messages:
            record.messages = entry.messages
        record.message_count = entry.message_count
        record.last_saved = entry.created_at
        record.updated_at = datetime.utcnow()

    # ==================== READ ====================

    async def history(
        self,
        session_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[AutoSave], int]:
        """Most recent entries first, with the session's total entry count"""
        limit = max(1, min(limit, settings.AUTOSAVE_HISTORY_MAX_LIMIT))
        offset = max(0, offset)

        result = await self.db.execute(
            select(AutoSave)
            .where(AutoSave.session_id == session_id)
            .order_by(AutoSave.created_at.desc(), AutoSave.received_at.desc())
            .limit(limit)
            .offset(offset)
        )
        entries = list(result.scalars().all())
        return entries, await self.count(session_id)

    async def count(self, session_id: str) -> int:
        result = await self.db.execute(
            select(func.count(AutoSave.id)).where(AutoSave.session_id == session_id)
        )
        return result.scalar() or 0

    async def restore(self, session_id: str, autosave_id: Optional[str] = None) -> Dict[str, Any]:
        """Session data from the live record, or from one autosave entry"""
        if autosave_id:
            entry = await self.db.get(AutoSave, autosave_id)
            if entry is None or entry.session_id != session_id:
                raise AutosaveNotFoundError(autosave_id)
            return {
                "id": entry.id,
                "session_id": entry.session_id,
                "code": entry.code,
                "styles": entry.styles,
                "messages": entry.messages,
                "message_count": entry.message_count,
                "last_saved": entry.created_at,
                "restored_from": "autosave",
            }

        record = await self.db.get(EditorSession, session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return self._session_data(record)

    @staticmethod
    def _session_data(record: EditorSession) -> Dict[str, Any]:
        return {
            "id": f"session-{record.session_id}",
            "session_id": record.session_id,
            "code": record.code,
            "styles": record.styles,
            "messages": record.messages,
            "message_count": record.message_count,
            "last_saved": record.last_saved,
            "restored_from": "session",
        }

    async def bulk_restore(self, session_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Session data for every known session in session_ids"""
        result = await self.db.execute(
            select(EditorSession).where(EditorSession.session_id.in_(set(session_ids)))
        )
        return {
            record.session_id: self._session_data(record)
            for record in result.scalars().all()
        }

    async def stats(self, session_id: str) -> Dict[str, Any]:
        """Save counts, trigger breakdown, first/last save and average sizes"""
        result = await self.db.execute(
            select(
                func.count(AutoSave.id),
                func.sum(case((AutoSave.is_auto_save == True, 1), else_=0)),  # noqa: E712
                func.min(AutoSave.created_at),
                func.max(AutoSave.created_at),
                func.avg(AutoSave.code_length),
                func.avg(AutoSave.styles_length),
            ).where(AutoSave.session_id == session_id)
        )
        total, auto, first, last, avg_code, avg_styles = result.one()
        total = total or 0
        auto = int(auto or 0)

        trigger_result = await self.db.execute(
            select(AutoSave.trigger, func.count(AutoSave.id))
            .where(AutoSave.session_id == session_id)
            .group_by(AutoSave.trigger)
        )

        return {
            "total_saves": total,
            "auto_saves": auto,
            "manual_saves": total - auto,
            "trigger_counts": {trigger: count for trigger, count in trigger_result.all()},
            "first_save": first,
            "last_save": last,
            "average_code_length": round(float(avg_code or 0), 2),
            "average_styles_length": round(float(avg_styles or 0), 2),
        }

    # ==================== RETENTION ====================

    async def cleanup(self, session_id: str, keep_count: int) -> Tuple[int, int]:
        """
        Keep the newest keep_count entries of a session.

        The keep set and its cutoff (the Nth-newest creation time) are fixed
        when the call starts; only entries at or before the cutoff that are
        outside the keep set are deleted, so anything appended meanwhile
        survives.

        Returns:
            (deleted, remaining)
        """
        keep_count = max(1, keep_count)
        result = await self.db.execute(
            select(AutoSave.id, AutoSave.created_at)
            .where(AutoSave.session_id == session_id)
            .order_by(AutoSave.created_at.desc(), AutoSave.received_at.desc())
            .limit(keep_count)
        )
        keep = result.all()

        deleted = 0
        if len(keep) == keep_count:
            cutoff = keep[-1].created_at
            keep_ids = [row.id for row in keep]
            delete_result = await self.db.execute(
                delete(AutoSave)
                .where(AutoSave.session_id == session_id)
                .where(AutoSave.created_at <= cutoff)
                .where(AutoSave.id.notin_(keep_ids))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            deleted = delete_result.rowcount or 0

        remaining = await self.count(session_id)
        logger.log_retention(session_id, deleted, remaining, keep_count=keep_count)
        return deleted, remaining
