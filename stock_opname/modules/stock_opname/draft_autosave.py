"""
modules/stock_opname/draft_autosave.py

Debounced draft persistence for the count screens.

Every schedule() replaces the pending payload and restarts a single-shot
QTimer, so a burst of edits results in one save of the last payload.
flush() writes the pending payload immediately (call it before navigating
away or completing the count); cancel() drops it (after discard).

Signals
-------
- saved(int)    number of items written
- skipped()     no active session any more (draft dropped)
- failed(str)   storage error message
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from ...constants import DRAFT_SAVE_DELAY_MS
from ...database.repositories.so_session_repo import SOStep, SOWorkingItem
from ...errors import PersistenceError

_log = logging.getLogger(__name__)


class DraftAutosaver(QObject):
    saved = Signal(int)
    skipped = Signal()
    failed = Signal(str)

    def __init__(self, sessions, delay_ms: int = DRAFT_SAVE_DELAY_MS, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._sessions = sessions
        self._pending: Optional[Tuple[List[SOWorkingItem], SOStep]] = None

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(int(delay_ms))
        self._timer.timeout.connect(self.flush)

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, items: Sequence[SOWorkingItem], last_step: SOStep | str) -> None:
        # copy: the screen keeps mutating its own list
        self._pending = (list(items), SOStep(last_step))
        self._timer.start()

    @Slot()
    def flush(self) -> bool:
        """Write the pending draft now. Returns True when something was saved."""
        self._timer.stop()
        if self._pending is None:
            return False
        items, step = self._pending
        self._pending = None
        try:
            ok = self._sessions.save_draft(items, step)
        except PersistenceError as e:
            _log.error("Draft save failed: %s", e)
            self.failed.emit(str(e))
            return False
        if not ok:
            self.skipped.emit()
            return False
        self.saved.emit(len(items))
        return True

    def cancel(self) -> None:
        self._timer.stop()
        self._pending = None
