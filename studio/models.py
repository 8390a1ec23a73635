"""
Studio data model - snapshots, save outcomes and restore candidates
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from studio.exceptions import SnapshotValidationError


class SaveTrigger(str, Enum):
    """Why a snapshot was created"""
    AUTO = "auto"
    MANUAL = "manual"
    CHAT = "chat"
    EXPORT = "export"
    PREVIEW = "preview"


class SaveOutcome(str, Enum):
    """Result of a persistence attempt"""
    SAVED_REMOTE = "saved-remote"
    SAVED_LOCAL = "saved-local"
    QUEUED_OFFLINE = "queued-offline"
    REJECTED = "rejected"

    @property
    def is_saved(self) -> bool:
        return self in (SaveOutcome.SAVED_REMOTE, SaveOutcome.SAVED_LOCAL)


class SaveStatus(str, Enum):
    """Autosave scheduler state, also shown by the status indicator"""
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"
    OFFLINE = "offline"


class ChangeKind(str, Enum):
    """Kind of edit reported by the editor"""
    CODE = "code"
    STYLES = "styles"
    CHAT = "chat"


class RestoreSource(str, Enum):
    """Where a restore candidate came from"""
    REMOTE_SESSION = "remoteSession"
    REMOTE_AUTOSAVE = "remoteAutosave"
    LOCAL_FALLBACK = "localFallback"

    @property
    def priority(self) -> int:
        """Lower wins on equal timestamps: live record, then log, then cache"""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    RestoreSource.REMOTE_SESSION: 0,
    RestoreSource.REMOTE_AUTOSAVE: 1,
    RestoreSource.LOCAL_FALLBACK: 2,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string, epoch milliseconds or datetime into an
    aware UTC datetime. Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise SnapshotValidationError(f"Invalid timestamp: {value!r}", field="createdAt")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable saved copy of the editor's code/styles plus metadata.

    The wire form (to_dict/from_dict) uses the camelCase keys the remote
    store and the local store share.
    """
    id: str
    session_id: str
    code: str
    styles: str
    description: str = "Auto-saved version"
    is_auto_save: bool = True
    trigger: SaveTrigger = SaveTrigger.AUTO
    message_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    messages: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def create(
        cls,
        session_id: str,
        code: str,
        styles: str,
        description: str = "Auto-saved version",
        trigger: SaveTrigger = SaveTrigger.AUTO,
        is_auto_save: Optional[bool] = None,
        messages: Optional[List[Dict[str, Any]]] = None,
        created_at: Optional[datetime] = None
    ) -> "Snapshot":
        """Create a new snapshot with a fresh id and timestamp"""
        messages = tuple(messages or ())
        if is_auto_save is None:
            is_auto_save = trigger != SaveTrigger.MANUAL
        return cls(
            id=uuid.uuid4().hex,
            session_id=session_id,
            code=code,
            styles=styles,
            description=description,
            is_auto_save=is_auto_save,
            trigger=SaveTrigger(trigger),
            message_count=len(messages),
            created_at=created_at or utc_now(),
            messages=messages,
        )

    @property
    def code_length(self) -> int:
        return len(self.code)

    @property
    def styles_length(self) -> int:
        return len(self.styles)

    @property
    def timestamp_ms(self) -> int:
        return to_epoch_ms(self.created_at)

    def with_description(self, description: str) -> "Snapshot":
        return replace(self, description=description)

    def validate(self) -> None:
        """Raise SnapshotValidationError if the snapshot is malformed"""
        if not isinstance(self.session_id, str) or not self.session_id.strip():
            raise SnapshotValidationError("Session ID is required", field="sessionId")
        if "/" in self.session_id or "\\" in self.session_id:
            raise SnapshotValidationError("Session ID must not contain path separators", field="sessionId")
        if not isinstance(self.code, str):
            raise SnapshotValidationError("Code must be text", field="code")
        if not isinstance(self.styles, str):
            raise SnapshotValidationError("Styles must be text", field="styles")
        if not isinstance(self.trigger, SaveTrigger):
            raise SnapshotValidationError(f"Unknown trigger: {self.trigger!r}", field="trigger")
        if not isinstance(self.message_count, int) or self.message_count < 0:
            raise SnapshotValidationError("Message count must be a non-negative integer", field="messageCount")
        if not isinstance(self.created_at, datetime):
            raise SnapshotValidationError("Creation time must be a datetime", field="createdAt")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "sessionId": self.session_id,
            "code": self.code,
            "styles": self.styles,
            "description": self.description,
            "isAutoSave": self.is_auto_save,
            "trigger": self.trigger.value,
            "messageCount": self.message_count,
            "createdAt": self.created_at.isoformat(),
        }
        if self.messages:
            data["messages"] = list(self.messages)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        """Build a snapshot from its wire form; raises SnapshotValidationError"""
        try:
            trigger = SaveTrigger(data.get("trigger") or SaveTrigger.AUTO)
        except ValueError:
            raise SnapshotValidationError(f"Unknown trigger: {data.get('trigger')!r}", field="trigger")

        messages = tuple(data.get("messages") or ())
        created = data.get("createdAt") or data.get("timestamp") or data.get("lastSaved")

        snapshot = cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            session_id=data.get("sessionId") or "",
            code=data.get("code") or "",
            styles=data.get("styles") or data.get("css") or "",
            description=data.get("description") or "Auto-saved version",
            is_auto_save=data.get("isAutoSave", True) is not False,
            trigger=trigger,
            message_count=int(data.get("messageCount") or len(messages)),
            created_at=parse_timestamp(created) if created else utc_now(),
            messages=messages,
        )
        snapshot.validate()
        return snapshot


@dataclass
class EditorContent:
    """What the live editor currently holds"""
    code: str = ""
    styles: str = ""
    messages: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.code and not self.styles


@dataclass(frozen=True)
class RestoreCandidate:
    """A prior state offered to the user during recovery"""
    id: str
    source: RestoreSource
    timestamp: datetime
    snapshot: Snapshot

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "timestamp": self.timestamp.isoformat(),
            "snapshot": self.snapshot.to_dict(),
        }


def rank_candidates(candidates: List[RestoreCandidate]) -> List[RestoreCandidate]:
    """Newest first; equal timestamps prefer the session record, then the log, then local"""
    return sorted(
        candidates,
        key=lambda c: (-c.timestamp.timestamp(), c.source.priority)
    )
