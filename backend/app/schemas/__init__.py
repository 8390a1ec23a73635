# Pydantic schemas
from app.schemas.autosave import (
    AutosaveCreate,
    AutosaveEntry,
    AutosaveCreateResponse,
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

__all__ = [
    "AutosaveCreate",
    "AutosaveEntry",
    "AutosaveCreateResponse",
    "AutosaveHistoryResponse",
    "AutosaveStats",
    "BulkRestoreRequest",
    "BulkRestoreResponse",
    "CleanupResponse",
    "Pagination",
    "RestoreResponse",
    "SessionData",
    "StatsResponse",
]
