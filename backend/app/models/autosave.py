"""
Autosave Models - the remote autosave log and the live session record
Used for: autosave history, session restore, retention cleanup, save statistics
"""

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, Index, JSON
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class AutoSave(Base):
    """
    One entry of a session's append-only autosave log.

    The id is the client's snapshot id, so a replayed save lands on the same
    row instead of creating a duplicate. created_at is the client's creation
    time (naive UTC) and defines the log order.
    """
    __tablename__ = "autosaves"

    __table_args__ = (
        Index('ix_autosaves_session_created', 'session_id', 'created_at'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    session_id = Column(String(255), nullable=False, index=True)

    # Editor content
    code = Column(Text, nullable=False, default="")
    styles = Column(Text, nullable=False, default="")
    messages = Column(JSON, nullable=True)

    # Metadata
    description = Column(String(500), nullable=False, default="Auto-saved version")
    is_auto_save = Column(Boolean, nullable=False, default=True)
    trigger = Column(String(20), nullable=False, default="auto")  # auto, manual, chat, export, preview
    message_count = Column(Integer, nullable=False, default=0)
    code_length = Column(Integer, nullable=False, default=0)
    styles_length = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    received_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<AutoSave {self.id} ({self.session_id}, {self.trigger})>"


class EditorSession(Base):
    """
    Latest known state of an editor session.

    Upserted by every autosave whose creation time is not older than the
    state already recorded, so a late replay never rolls the record back.
    """
    __tablename__ = "editor_sessions"

    session_id = Column(String(255), primary_key=True)

    code = Column(Text, nullable=False, default="")
    styles = Column(Text, nullable=False, default="")
    messages = Column(JSON, nullable=True)
    message_count = Column(Integer, nullable=False, default=0)

    last_saved = Column(DateTime, nullable=True)  # created_at of the autosave applied last
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<EditorSession {self.session_id}>"
