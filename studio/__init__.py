"""
UI Studio - versioned persistence and recovery for live editor sessions
"""

__version__ = "1.0.0"
