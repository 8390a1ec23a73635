"""
Studio Client Exceptions
========================

Failures of the remote persistence path, classified so the persistence
client can decide between retrying, degrading to the local store and
rejecting a snapshot outright.

Usage:
    from studio.exceptions import TransientRemoteError, ResourceNotFoundError

    try:
        await remote.autosave(snapshot)
    except ResourceNotFoundError:
        await local_store.write_fallback(snapshot)
"""

from typing import Optional, Any, Dict


class StudioError(Exception):
    """Base exception for all studio client errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class TransientRemoteError(StudioError):
    """Network failure, timeout or 5xx answer - worth retrying"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message,
            code="REMOTE_UNAVAILABLE",
            details={"status_code": status_code}
        )
        self.status_code = status_code


class ResourceNotFoundError(StudioError):
    """Endpoint or session absent on the remote side"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class SnapshotValidationError(StudioError):
    """Malformed snapshot - never retried or queued"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="INVALID_SNAPSHOT",
            details={"field": field} if field else {}
        )
        self.field = field


class LocalStoreError(StudioError):
    """Client-local store could not be read or written"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(
            message,
            code="LOCAL_STORE_ERROR",
            details={"key": key} if key else {}
        )
        self.key = key
