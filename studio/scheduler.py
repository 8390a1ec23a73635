"""
Autosave Scheduler - decides when and why the live editor is saved

State machine (per scheduler / editor session):

    idle -> pending -> saving -> saved | error | offline
              ^                         |
              +------ new change -------+

Trigger classification, first match wins:
    new chat message      -> "chat", short delay
    code and/or styles    -> "auto", idle debounce delay

Every qualifying change cancels the pending timer and starts a new one
(debounce, not throttle). A manual save bypasses the timer.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, List, Callable, Set

from studio.config import StudioConfig
from studio.editor import EditorBridge
from studio.models import (
    Snapshot,
    SaveTrigger,
    SaveOutcome,
    SaveStatus,
    ChangeKind,
    EditorContent,
    utc_now,
)
from studio.persistence import PersistenceClient
from studio.version_history import VersionHistoryStore
from studio.logging_config import logger


StatusListener = Callable[[SaveStatus], None]

_OUTCOME_STATUS = {
    SaveOutcome.SAVED_REMOTE: SaveStatus.SAVED,
    SaveOutcome.SAVED_LOCAL: SaveStatus.SAVED,
    SaveOutcome.QUEUED_OFFLINE: SaveStatus.OFFLINE,
    SaveOutcome.REJECTED: SaveStatus.ERROR,
}


@dataclass(frozen=True)
class SavePlan:
    """A classified change waiting for its timer"""
    trigger: SaveTrigger
    description: str
    delay: float


@dataclass
class _Baseline:
    code: str = ""
    styles: str = ""
    message_count: int = 0


class AutosaveScheduler:
    """
    Usage:
        scheduler = AutosaveScheduler(config, editor, history, persistence)
        scheduler.on_status_change(lambda status: print(status.value))

        scheduler.on_change(ChangeKind.CODE)     # from the editor
        await scheduler.force_save("Before refactor")
        await scheduler.teardown()               # before leaving the session
    """

    def __init__(
        self,
        config: StudioConfig,
        editor: EditorBridge,
        history: VersionHistoryStore,
        persistence: PersistenceClient
    ):
        self.config = config
        self.editor = editor
        self.history = history
        self.persistence = persistence

        self.status = SaveStatus.IDLE
        self.last_outcome: Optional[SaveOutcome] = None
        self.last_save_time = None
        self.pending_plan: Optional[SavePlan] = None

        self._baseline = _Baseline()
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._listeners: List[StatusListener] = []
        self._last_created_at = None

    # ==================== STATUS ====================

    def on_status_change(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _set_status(self, status: SaveStatus) -> None:
        if status == self.status:
            return
        logger.debug(f"Autosave status {self.status.value} -> {status.value}")
        self.status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.log_error_with_context(e, context="autosave status listener")

    # ==================== CLASSIFICATION ====================

    def classify(self, content: EditorContent) -> Optional[SavePlan]:
        """SavePlan for the difference between content and the last save, or None"""
        message_count = len(content.messages)
        code_changed = content.code != self._baseline.code
        styles_changed = content.styles != self._baseline.styles

        if message_count > self._baseline.message_count:
            return SavePlan(
                trigger=SaveTrigger.CHAT,
                description=f"Auto-saved after chat interaction ({message_count} messages)",
                delay=self.config.chat_save_delay
            )
        if code_changed and styles_changed:
            description = "Auto-saved code and style changes"
        elif code_changed:
            description = "Auto-saved code changes"
        elif styles_changed:
            description = "Auto-saved style changes"
        else:
            return None

        return SavePlan(trigger=SaveTrigger.AUTO, description=description,
                        delay=self.config.autosave_delay)

    def _read_live_state(self, context: str) -> Optional[EditorContent]:
        """Live editor state, or None (status -> error) when the editor can't be read"""
        try:
            return self.editor.read_live_editor_state()
        except Exception as e:
            logger.log_error_with_context(e, context=context)
            self._set_status(SaveStatus.ERROR)
            return None

    def has_unsaved_changes(self) -> bool:
        if not self.editor.get_current_session_id():
            return False
        content = self.editor.read_live_editor_state()
        return (self.classify(content) is not None
                or len(content.messages) != self._baseline.message_count)

    def mark_saved(self, content: EditorContent) -> None:
        """Take content as already persisted (after a restore or session load)"""
        self.cancel_pending()
        self._baseline = _Baseline(content.code, content.styles, len(content.messages))

    # ==================== SCHEDULING ====================

    def on_change(self, kind: Optional[ChangeKind] = None) -> Optional[SavePlan]:
        """
        Report an edit. Restarts the debounce timer when the live state
        differs from the last save; returns the plan that was scheduled.
        """
        if not self.editor.get_current_session_id():
            return None

        plan = self.classify(self.editor.read_live_editor_state())
        if plan is None:
            return None

        self.cancel_pending()
        self.pending_plan = plan
        self._set_status(SaveStatus.PENDING)
        self._timer = asyncio.create_task(self._fire_after(plan))
        logger.debug(
            f"Autosave scheduled in {plan.delay:.1f}s ({plan.trigger.value}"
            f"{', ' + kind.value if kind else ''})"
        )
        return plan

    def cancel_pending(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.pending_plan = None

    async def _fire_after(self, plan: SavePlan) -> None:
        await asyncio.sleep(plan.delay)

        # Past this point the save is no longer cancellable by new edits
        self._timer = None
        self.pending_plan = None
        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            content = self._read_live_state("debounced autosave")
            if content is None:
                return
            current = self.classify(content)
            if current is None:
                self._set_status(SaveStatus.SAVED if self.last_outcome else SaveStatus.IDLE)
                return
            await self._save(current.trigger, current.description, is_auto_save=True)
        except Exception as e:
            logger.log_error_with_context(e, context="debounced autosave")
            self._set_status(SaveStatus.ERROR)
        finally:
            self._in_flight.discard(task)

    async def flush_pending(self) -> Optional[SaveOutcome]:
        """Save a change still waiting on the debounce timer right away"""
        plan = self.pending_plan
        if plan is None:
            return None
        self.cancel_pending()
        return await self._save(plan.trigger, plan.description, is_auto_save=True)

    # ==================== SAVING ====================

    def _next_created_at(self):
        now = utc_now()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    async def _save(
        self,
        trigger: SaveTrigger,
        description: str,
        is_auto_save: bool
    ) -> Optional[SaveOutcome]:
        session_id = self.editor.get_current_session_id()
        if not session_id:
            return None

        content = self._read_live_state(f"{trigger.value} save")
        if content is None:
            return None
        if content.is_empty and not content.messages:
            return None

        snapshot = Snapshot.create(
            session_id=session_id,
            code=content.code,
            styles=content.styles,
            description=description,
            trigger=trigger,
            is_auto_save=is_auto_save,
            messages=content.messages,
            created_at=self._next_created_at()
        )

        # Commit in production order, before any await
        self.history.commit(snapshot)
        self._baseline = _Baseline(content.code, content.styles, len(content.messages))
        self._set_status(SaveStatus.SAVING)

        try:
            outcome = await self.persistence.save(snapshot)
        except Exception as e:
            logger.log_error_with_context(e, context="autosave", snapshot_id=snapshot.id)
            self.last_outcome = None
            if self._timer is None:
                self._set_status(SaveStatus.ERROR)
            return None

        self.last_outcome = outcome
        if outcome.is_saved:
            self.last_save_time = utc_now()

        # A newer change is already waiting; stay pending
        if self._timer is None:
            self._set_status(_OUTCOME_STATUS[outcome])
        return outcome

    async def force_save(self, description: str = "Manual save") -> Optional[SaveOutcome]:
        """Save now, bypassing the timer"""
        self.cancel_pending()
        return await self._save(SaveTrigger.MANUAL, description, is_auto_save=False)

    async def save_snapshot(self, trigger: SaveTrigger, description: str) -> Optional[SaveOutcome]:
        """Immediate save for export/preview and other explicit triggers"""
        return await self._save(SaveTrigger(trigger), description,
                                is_auto_save=trigger != SaveTrigger.MANUAL)

    async def teardown(self) -> Optional[SaveOutcome]:
        """
        Last best-effort save before the session goes away. Bounded by
        teardown_timeout; the local session mirror is written first, so an
        interrupted remote write still leaves a recoverable copy.
        """
        try:
            unsaved = self.has_unsaved_changes()
        except Exception as e:
            logger.log_error_with_context(e, context="save before closing")
            self._set_status(SaveStatus.ERROR)
            unsaved = False
        self.cancel_pending()

        outcome = None
        if unsaved:
            try:
                outcome = await asyncio.wait_for(
                    self._save(SaveTrigger.MANUAL, "Saved before closing", is_auto_save=False),
                    timeout=self.config.teardown_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Save before closing timed out")

        if self._in_flight:
            done, pending = await asyncio.wait(set(self._in_flight), timeout=self.config.teardown_timeout)
            for task in pending:
                task.cancel()
        return outcome
