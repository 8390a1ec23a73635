# Re-export all models for convenient imports
from app.models.autosave import AutoSave, EditorSession

__all__ = [
    "AutoSave",
    "EditorSession",
]
