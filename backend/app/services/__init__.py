from app.services.autosave_service import AutosaveService

__all__ = [
    "AutosaveService",
]
