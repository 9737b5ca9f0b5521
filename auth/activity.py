"""
auth/activity.py -- Idle-timeout enforcement for the signed-in session.

A single "last activity" cell lives in local storage (key: last_activity)
and this module is its only writer. It is stamped on every interaction
event and on every sign-in; a polling task compares it against the clock
once per IDLE_POLL_SECONDS and signs the user out after IDLE_TIMEOUT_SECONDS
of inactivity. No debouncing.

The polling loop and the activity events share one event loop, so the cell
needs no locking.

Usage:
    monitor = IdleMonitor(session_manager, local_store)
    monitor.start()                      # inside a running event loop
    monitor.record_activity("keypress")  # from UI event handlers
    ...
    monitor.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from core.config import Settings, get_settings
from core.security_log import log_security_event
from storage.errors import StorageError

if TYPE_CHECKING:
    from auth.models import Session
    from auth.session import SessionManager
    from storage.local import LocalStore

logger = logging.getLogger("honestinvoice.auth.activity")

LAST_ACTIVITY_KEY = "last_activity"

ACTIVITY_EVENTS = frozenset({"mousedown", "mousemove", "keypress", "scroll", "touchstart", "interaction"})


class IdleMonitor:
    def __init__(
        self,
        session_manager: SessionManager,
        storage: LocalStore,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._manager = session_manager
        self._storage = storage
        self._settings = settings or get_settings()
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._unsubscribe = session_manager.on_auth_state_change(self._on_auth_state_change)

    # ------------------------------------------------------------------
    # Activity cell
    # ------------------------------------------------------------------

    def record_activity(self, event: str = "interaction") -> None:
        """Stamp now as the last activity. Ignored when signed out or for unknown events."""
        if event not in ACTIVITY_EVENTS or self._manager.get_user() is None:
            return
        self._stamp()

    def get_last_activity(self) -> float:
        """Stored last-activity instant, or now when none is stored or it is unreadable."""
        try:
            stored = self._storage.get_item(LAST_ACTIVITY_KEY)
            return float(stored) if stored is not None else self._clock()
        except (StorageError, TypeError, ValueError) as e:
            logger.warning("Could not read last activity: %s", e)
            return self._clock()

    # ------------------------------------------------------------------
    # Timeout check
    # ------------------------------------------------------------------

    def check(self) -> bool:
        """Sign out if the user has been idle too long. Returns True if it signed out."""
        user = self._manager.get_user()
        if user is None or not self._manager.is_authenticated():
            return False
        idle_for = self._clock() - self.get_last_activity()
        if idle_for <= self._settings.idle_timeout_seconds:
            return False
        log_security_event("SESSION_EXPIRED", user_id=user.id, reason="idle", idle_seconds=int(idle_for))
        self._manager.sign_out()
        return True

    async def run(self) -> None:
        """Poll check() forever. Cancel the task to stop.

        CancelledError from asyncio.sleep propagates and unwinds the loop
        cleanly on stop().
        """
        while True:
            await asyncio.sleep(self._settings.idle_poll_seconds)
            self.check()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def close(self) -> None:
        self.stop()
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_auth_state_change(self, session: Session | None) -> None:
        if session is not None:
            self._stamp()
            return
        try:
            self._storage.remove_item(LAST_ACTIVITY_KEY)
        except StorageError as e:
            logger.warning("Could not clear last activity: %s", e)

    def _stamp(self) -> None:
        try:
            self._storage.set_item(LAST_ACTIVITY_KEY, self._clock())
        except StorageError as e:
            logger.warning("Could not record activity: %s", e)
