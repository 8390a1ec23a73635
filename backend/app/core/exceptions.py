"""
Custom Exceptions for the Autosave backend
==========================================

Raise these from services; the API layer turns them into
{"success": false, "error": ..., "code": ...} responses.

Usage:
    from app.core.exceptions import AutosaveNotFoundError

    if not autosave:
        raise AutosaveNotFoundError(autosave_id)
"""

from typing import Optional, Any, Dict


class StudioBackendError(Exception):
    """Base exception for all autosave backend errors"""

    status_code = 500

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


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(StudioBackendError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class SessionNotFoundError(ResourceNotFoundError):
    """No session record and no autosaves for this session"""

    def __init__(self, session_id: str):
        super().__init__("Session", session_id)


class AutosaveNotFoundError(ResourceNotFoundError):
    """Autosave entry not found in the session's log"""

    def __init__(self, autosave_id: str):
        super().__init__("Autosave", autosave_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(StudioBackendError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class SnapshotTooLargeError(ValidationError):
    """Snapshot code + styles exceed the configured size limit"""

    status_code = 413

    def __init__(self, size: int, limit: int):
        super().__init__(f"Snapshot is {size} bytes; the limit is {limit} bytes")
        self.code = "SNAPSHOT_TOO_LARGE"
        self.details = {"size": size, "limit": limit}


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: StudioBackendError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.message,
        "code": error.code,
        "details": error.details
    }
