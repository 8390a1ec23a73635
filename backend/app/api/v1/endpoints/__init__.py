# API endpoints
from . import autosave

__all__ = ["autosave"]
