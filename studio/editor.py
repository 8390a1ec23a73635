"""
Editor bridge - the engine's view of the live editor

The engine never owns editor state; it reads and writes it through an
EditorBridge so the same engine can drive a browser session, a pair of
files on disk, or an in-memory editor in tests.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, List, Dict, Any

from studio.models import EditorContent


class EditorBridge(ABC):
    """Interface the session layer provides to the persistence engine"""

    @abstractmethod
    def get_current_session_id(self) -> Optional[str]:
        """Session being edited, or None when no session is open"""

    @abstractmethod
    def read_live_editor_state(self) -> EditorContent:
        """Current code, styles and chat messages"""

    @abstractmethod
    def write_live_editor_state(self, code: str, styles: str) -> None:
        """Replace the editor's code and styles"""

    @abstractmethod
    def append_chat_messages(self, messages: List[Dict[str, Any]]) -> None:
        """Append restored chat messages to the conversation"""


class InMemoryEditor(EditorBridge):
    """Editor state held in memory"""

    def __init__(self, session_id: Optional[str] = None, code: str = "", styles: str = ""):
        self.session_id = session_id
        self.code = code
        self.styles = styles
        self.messages: List[Dict[str, Any]] = []

    def get_current_session_id(self) -> Optional[str]:
        return self.session_id

    def read_live_editor_state(self) -> EditorContent:
        return EditorContent(code=self.code, styles=self.styles, messages=list(self.messages))

    def write_live_editor_state(self, code: str, styles: str) -> None:
        self.code = code
        self.styles = styles

    def append_chat_messages(self, messages: List[Dict[str, Any]]) -> None:
        self.messages.extend(messages)

    def add_message(self, role: str, content: str) -> None:
        self.messages.append({"role": role, "content": content})


class FileEditor(EditorBridge):
    """
    Treats a markup file and a style file on disk as the live editor.

    Chat messages, if any, live in a JSON list next to the markup file.
    """

    def __init__(self, session_id: str, code_path: Path, styles_path: Path,
                 messages_path: Optional[Path] = None):
        self.session_id = session_id
        self.code_path = Path(code_path)
        self.styles_path = Path(styles_path)
        self.messages_path = Path(messages_path) if messages_path else None

    @staticmethod
    def _read(path: Path) -> str:
        return path.read_text(encoding="utf-8") if path.exists() else ""

    def get_current_session_id(self) -> Optional[str]:
        return self.session_id

    def read_live_editor_state(self) -> EditorContent:
        return EditorContent(
            code=self._read(self.code_path),
            styles=self._read(self.styles_path),
            messages=self._read_messages()
        )

    def _read_messages(self) -> List[Dict[str, Any]]:
        if not self.messages_path or not self.messages_path.exists():
            return []
        try:
            data = json.loads(self.messages_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        return data if isinstance(data, list) else []

    def write_live_editor_state(self, code: str, styles: str) -> None:
        self.code_path.write_text(code, encoding="utf-8")
        self.styles_path.write_text(styles, encoding="utf-8")

    def append_chat_messages(self, messages: List[Dict[str, Any]]) -> None:
        if not self.messages_path:
            return
        current = self._read_messages()
        current.extend(messages)
        self.messages_path.write_text(json.dumps(current, indent=2), encoding="utf-8")

    def modified_marker(self) -> tuple:
        """mtimes of the watched files, used to detect edits"""
        paths = [self.code_path, self.styles_path]
        if self.messages_path:
            paths.append(self.messages_path)
        return tuple(p.stat().st_mtime_ns if p.exists() else 0 for p in paths)
