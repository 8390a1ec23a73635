"""
Studio - Client Logging Configuration
Plain text for interactive use, JSON structured lines when json_logging is on
"""

import logging
import os
import sys
import json
import traceback
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar


# Context variable for the session being saved/restored
session_id_var: ContextVar[str] = ContextVar('session_id', default='')


def get_session_id() -> str:
    """Get current session ID from context"""
    return session_id_var.get() or ''


def set_session_id(session_id: str) -> None:
    """Set session ID in context"""
    session_id_var.set(session_id)


_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'session_id',
}


class JSONFormatter(logging.Formatter):
    """JSON formatter, one object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        session_id = get_session_id()
        if session_id:
            log_data["session_id"] = session_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """Readable formatter that includes the current session ID"""

    def format(self, record: logging.LogRecord) -> str:
        record.session_id = get_session_id() or '-'
        return super().format(record)


class StudioLogger(logging.Logger):
    """
    Logger with convenience methods for persistence events
    """

    def log_save_event(self, session_id: str, outcome: str, trigger: str,
                       snapshot_id: str = None, **kwargs) -> None:
        """Log the outcome of a snapshot save"""
        level = logging.WARNING if outcome == "rejected" else logging.INFO
        self.log(
            level,
            f"Save {outcome} for session {session_id} (trigger: {trigger})",
            extra={
                "event_type": "save",
                "save_outcome": outcome,
                "save_trigger": trigger,
                "snapshot_id": snapshot_id,
                **kwargs
            }
        )

    def log_replay(self, attempted: int, persisted: int, remaining: int,
                   **kwargs) -> None:
        """Log a pending-save replay pass"""
        self.info(
            f"Replay finished: {persisted}/{attempted} persisted, {remaining} still pending",
            extra={
                "event_type": "replay",
                "replay_attempted": attempted,
                "replay_persisted": persisted,
                "replay_remaining": remaining,
                **kwargs
            }
        )

    def log_recovery(self, session_id: str, candidates: int, degraded: bool,
                     **kwargs) -> None:
        """Log the result of a recovery lookup"""
        level = logging.WARNING if degraded else logging.INFO
        self.log(
            level,
            f"Recovery for session {session_id}: {candidates} candidate(s)" +
            (" - degraded mode" if degraded else ""),
            extra={
                "event_type": "recovery",
                "recovery_candidates": candidates,
                "recovery_degraded": degraded,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_logging: Optional[bool] = None
) -> StudioLogger:
    """Setup client logging, falling back to STUDIO_* environment variables"""

    level = level or os.environ.get("STUDIO_LOG_LEVEL", "INFO")
    log_file = log_file or os.environ.get("STUDIO_LOG_FILE")
    if json_logging is None:
        json_logging = os.environ.get("STUDIO_JSON_LOGGING", "").lower() == "true"

    logging.setLoggerClass(StudioLogger)

    logger = logging.getLogger("studio")
    logger.__class__ = StudioLogger
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    logger.handlers.clear()

    if json_logging:
        console_formatter = JSONFormatter()
        file_formatter = JSONFormatter()
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(session_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logger.level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger


logger: StudioLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_session_id',
    'set_session_id',
    'StudioLogger',
]
