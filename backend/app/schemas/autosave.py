from pydantic import BaseModel, Field, ConfigDict, AliasChoices, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, List, Any, Literal, Annotated
from datetime import datetime, timezone


def _iso_utc(value: datetime) -> str:
    """Stored timestamps are naive UTC; emit them with an explicit offset"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


UtcDatetime = Annotated[datetime, PlainSerializer(_iso_utc, return_type=str, when_used="json")]

Trigger = Literal["auto", "manual", "chat", "export", "preview"]


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ==========================================
# Requests
# ==========================================

class AutosaveCreate(CamelModel):
    id: Optional[str] = Field(None, min_length=1, max_length=36)
    session_id: str = Field(..., min_length=1, max_length=255)
    code: str = ""
    styles: str = Field("", validation_alias=AliasChoices("styles", "css"))
    description: str = Field("Auto-saved version", max_length=500)
    is_auto_save: bool = True
    trigger: Trigger = "auto"
    message_count: int = Field(0, ge=0)
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at", "timestamp")
    )
    messages: Optional[List[Dict[str, Any]]] = None

    @field_validator("session_id")
    @classmethod
    def session_id_is_plain(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Session ID is required")
        if "/" in v or "\\" in v:
            raise ValueError("Session ID must not contain path separators")
        return v


class BulkRestoreRequest(CamelModel):
    session_ids: List[str] = Field(..., min_length=1, max_length=100)


# ==========================================
# Responses
# ==========================================

class AutosaveEntry(CamelModel):
    id: str
    session_id: str
    code: str
    styles: str
    description: str
    is_auto_save: bool
    trigger: str
    message_count: int
    code_length: int
    styles_length: int
    created_at: UtcDatetime
    messages: Optional[List[Dict[str, Any]]] = None


class AutosaveCreateResponse(CamelModel):
    success: bool = True
    autosave_id: str
    timestamp: UtcDatetime
    created: bool


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class AutosaveHistoryResponse(CamelModel):
    success: bool = True
    history: List[AutosaveEntry]
    pagination: Pagination


class SessionData(CamelModel):
    id: Optional[str] = None
    session_id: str
    code: str = ""
    styles: str = ""
    messages: Optional[List[Dict[str, Any]]] = None
    message_count: int = 0
    last_saved: Optional[UtcDatetime] = None
    restored_from: Literal["session", "autosave"] = "session"


class RestoreResponse(CamelModel):
    success: bool = True
    session_data: SessionData


class AutosaveStats(CamelModel):
    total_saves: int = 0
    auto_saves: int = 0
    manual_saves: int = 0
    trigger_counts: Dict[str, int] = Field(default_factory=dict)
    first_save: Optional[UtcDatetime] = None
    last_save: Optional[UtcDatetime] = None
    average_code_length: float = 0.0
    average_styles_length: float = 0.0


class StatsResponse(CamelModel):
    success: bool = True
    stats: AutosaveStats


class CleanupResponse(CamelModel):
    success: bool = True
    deleted_count: int
    remaining: int


class BulkRestoreResponse(CamelModel):
    success: bool = True
    sessions: Dict[str, SessionData]
    found: int
    requested: int
