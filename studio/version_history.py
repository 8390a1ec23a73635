"""
Studio Version History

Bounded, linear undo/redo history of committed snapshots, kept per
session in memory:
  commit        Append a snapshot (drops any redo branch)
  undo / redo   Move the current pointer
  go_to         Jump to a version
"""

from typing import Optional, List, Dict
from dataclasses import dataclass

from studio.models import Snapshot
from studio.logging_config import logger


DEFAULT_MAX_VERSIONS = 50
MIN_MAX_VERSIONS = 10


@dataclass
class UndoRedoState:
    """Undo/redo view of one session's history"""
    can_undo: bool = False
    can_redo: bool = False
    current_index: int = 0
    total_versions: int = 0


@dataclass
class _SessionHistory:
    entries: List[Snapshot]
    pointer: int = 0


class VersionHistoryStore:
    """
    Per-session version history with FIFO eviction.

    Invariants for every session:
    - entries are in strictly increasing created_at order
    - len(entries) <= max_versions
    - 0 <= pointer < len(entries) whenever entries exist

    Usage:
        history = VersionHistoryStore(max_versions=50)

        history.commit(snapshot)
        history.undo(session_id)
        history.redo(session_id)
        history.go_to(session_id, 3)
    """

    def __init__(self, max_versions: int = DEFAULT_MAX_VERSIONS):
        self.max_versions = max(1, max_versions)
        self._sessions: Dict[str, _SessionHistory] = {}

    def _history(self, session_id: str) -> _SessionHistory:
        if session_id not in self._sessions:
            self._sessions[session_id] = _SessionHistory(entries=[])
        return self._sessions[session_id]

    def commit(self, snapshot: Snapshot) -> bool:
        """
        Append a snapshot after the current pointer.

        Returns False (and leaves history untouched) when the snapshot is
        not newer than the session's latest entry.
        """
        history = self._history(snapshot.session_id)

        if history.entries and snapshot.created_at <= history.entries[-1].created_at:
            logger.warning(
                f"Ignoring out-of-order commit {snapshot.id} for session {snapshot.session_id}"
            )
            return False

        # Drop the redo branch
        if history.pointer < len(history.entries) - 1:
            del history.entries[history.pointer + 1:]

        history.entries.append(snapshot)
        history.pointer = len(history.entries) - 1

        self._evict(history)
        return True

    def _evict(self, history: _SessionHistory) -> int:
        overflow = len(history.entries) - self.max_versions
        if overflow <= 0:
            return 0
        del history.entries[:overflow]
        history.pointer = max(0, history.pointer - overflow)
        return overflow

    def undo(self, session_id: str) -> Optional[Snapshot]:
        """Step back one version; returns the now-current snapshot"""
        history = self._sessions.get(session_id)
        if not history or history.pointer <= 0:
            return None
        history.pointer -= 1
        return history.entries[history.pointer]

    def redo(self, session_id: str) -> Optional[Snapshot]:
        """Step forward one version; returns the now-current snapshot"""
        history = self._sessions.get(session_id)
        if not history or history.pointer >= len(history.entries) - 1:
            return None
        history.pointer += 1
        return history.entries[history.pointer]

    def go_to(self, session_id: str, index: int) -> Optional[Snapshot]:
        history = self._sessions.get(session_id)
        if not history or not (0 <= index < len(history.entries)):
            return None
        history.pointer = index
        return history.entries[index]

    def rename(self, session_id: str, index: int, description: str) -> bool:
        """Change the description of an entry; everything else stays as committed"""
        history = self._sessions.get(session_id)
        if not history or not (0 <= index < len(history.entries)):
            return False
        history.entries[index] = history.entries[index].with_description(description)
        return True

    def clear(self, session_id: str) -> None:
        history = self._sessions.get(session_id)
        if history:
            history.entries.clear()
            history.pointer = 0

    def set_max_versions(self, max_versions: int) -> None:
        """Change the bound (minimum 10) and trim every session to it"""
        self.max_versions = max(MIN_MAX_VERSIONS, max_versions)
        for history in self._sessions.values():
            self._evict(history)

    def entries(self, session_id: str) -> List[Snapshot]:
        history = self._sessions.get(session_id)
        return list(history.entries) if history else []

    def current(self, session_id: str) -> Optional[Snapshot]:
        history = self._sessions.get(session_id)
        if not history or not history.entries:
            return None
        return history.entries[history.pointer]

    def get(self, session_id: str, index: int) -> Optional[Snapshot]:
        history = self._sessions.get(session_id)
        if not history or not (0 <= index < len(history.entries)):
            return None
        return history.entries[index]

    def pointer(self, session_id: str) -> int:
        history = self._sessions.get(session_id)
        return history.pointer if history else 0

    def can_undo(self, session_id: str) -> bool:
        return self.pointer(session_id) > 0

    def can_redo(self, session_id: str) -> bool:
        history = self._sessions.get(session_id)
        return bool(history) and history.pointer < len(history.entries) - 1

    def state(self, session_id: str) -> UndoRedoState:
        return UndoRedoState(
            can_undo=self.can_undo(session_id),
            can_redo=self.can_redo(session_id),
            current_index=self.pointer(session_id),
            total_versions=len(self.entries(session_id))
        )

    def sessions(self) -> List[str]:
        return [sid for sid, history in self._sessions.items() if history.entries]
