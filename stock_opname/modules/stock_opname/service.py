"""
modules/stock_opname/service.py

Purpose
-------
Single entry point the cashier / inventory screens use for stock opname.
Wires the repositories, the reconciliation engine and the trend analyzer
around one sqlite connection.

Public interface
----------------
- start_session(so_type, discard_existing=False) -> SOSession
- current_session() -> SOSession | None
- load_item(code) -> SOWorkingItem
- set_physical_qty(item, text) -> SOWorkingItem
- save_draft(items, last_step) -> bool
- discard_session() -> None
- refresh(items) -> list[SOWorkingItem]
- complete(items, user) -> CompletionResult
- history() / history_entry(id) / purge_history(ids)
- analyze(items) -> TrendReport
- make_autosaver(parent=None) -> DraftAutosaver
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from ...database.repositories import (
    InventoryRepo,
    SOHistoryRecord,
    SOHistoryRepo,
    SOSession,
    SOSessionRepo,
    SOStep,
    SOType,
    SOWorkingItem,
)
from ...errors import NotFoundError, ValidationError
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import parse_qty
from .draft_autosave import DraftAutosaver
from .reconciliation import ReconciliationEngine, SOSessionMeta, SOSummary
from .trend_analysis import TrendAnalyzer, TrendReport

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    record: SOHistoryRecord
    summary: SOSummary
    trends: TrendReport


class StockOpnameService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        inventory=None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.conn = conn
        self._clock = clock or datetime.now
        self.inventory = inventory if inventory is not None else InventoryRepo(conn)
        self.sessions = SOSessionRepo(conn)
        self.history_repo = SOHistoryRepo(conn)
        self.engine = ReconciliationEngine(
            self.inventory, self.history_repo, self.sessions, clock=self._clock
        )
        self.analyzer = TrendAnalyzer()

    # ---- session lifecycle ----

    def start_session(self, so_type: SOType | str, *, discard_existing: bool = False) -> SOSession:
        if discard_existing:
            self.sessions.discard()
        return self.sessions.start(so_type, now=self._clock())

    def current_session(self) -> SOSession | None:
        return self.sessions.current()

    def save_draft(self, items: Sequence[SOWorkingItem], last_step: SOStep | str) -> bool:
        return self.sessions.save_draft(items, last_step)

    def discard_session(self) -> None:
        self.sessions.discard()

    def make_autosaver(self, parent=None) -> DraftAutosaver:
        return DraftAutosaver(self.sessions, parent=parent)

    # ---- working list ----

    def load_item(self, code: str) -> SOWorkingItem:
        """Working item for `code`, system quantity taken from inventory, physical 0."""
        inv = self.inventory.get_item(code)
        if inv is None:
            raise NotFoundError(code)
        return SOWorkingItem(
            code=inv.code,
            name=inv.name,
            sku=inv.sku,
            category=inv.category,
            price=inv.price,
            system_qty=int(inv.quantity),
            physical_qty=0,
        )

    @staticmethod
    def set_physical_qty(item: SOWorkingItem, text) -> SOWorkingItem:
        """Apply a count input; a cleared field counts as 0."""
        return replace(item, physical_qty=parse_qty(text))

    def refresh(self, items: Sequence[SOWorkingItem]) -> List[SOWorkingItem]:
        return self.engine.refresh_system_quantities(items)

    # ---- completion ----

    def complete(self, items: Sequence[SOWorkingItem], user: dict) -> CompletionResult:
        """
        Finalize the active session for `user` ({"user_id", "username"}) and
        build everything the report screen shows.
        """
        session = self.sessions.current()
        if session is None:
            raise ValidationError("No stock opname session is in progress.")

        meta = SOSessionMeta(
            user_id=str(user.get("user_id") or "unknown"),
            user_name=str(user.get("username") or "Unknown User"),
            start_time=session.start_time,
        )
        record = self.engine.finalize(items, meta)
        summary = self.engine.summarize(items, record.duration_seconds)
        # history now includes the count just recorded
        trends = self.analyze(items)
        return CompletionResult(record=record, summary=summary, trends=trends)

    # ---- history ----

    def history(self) -> List[SOHistoryRecord]:
        return self.history_repo.list_all()

    def history_entry(self, history_id: str) -> SOHistoryRecord | None:
        return self.history_repo.get(history_id)

    def purge_history(self, ids: Iterable[str]) -> int:
        ids = list(ids)
        removed = self.history_repo.delete_by_ids(ids)
        log_event(get_audit_logger(), "history", "purge", "SO history purged",
                  {"requested": ids, "removed": removed})
        return removed

    def analyze(self, items: Sequence[SOWorkingItem]) -> TrendReport:
        return self.analyzer.analyze(items, self.history_repo.list_all())
