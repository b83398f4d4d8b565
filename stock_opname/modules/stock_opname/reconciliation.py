"""
modules/stock_opname/reconciliation.py

Purpose
-------
Differences and totals between system and physically counted quantities,
plus the finalize step that writes the counted quantities back to inventory.

Public interface
----------------
- compute_difference(item) -> int            physical - system
- compute_line_total(item) -> Decimal        difference * price
- classify_difference(item) -> DifferenceType
- summarize(items, total_inventory_items, duration_seconds) -> SOSummary
- display_order(items, mismatches_only=False) -> list
- fmt_rp_signed(amount) -> str                 "+Rp 3,000" / "-Rp 6,000"
- ReconciliationEngine(inventory, history, sessions)
    .refresh_system_quantities(items) -> list
    .finalize(items, meta) -> SOHistoryRecord
    .summarize(items, duration_seconds=0) -> SOSummary

`inventory` is any gateway exposing get_item / set_quantity / count_all.

Finalize policy: updates are issued one by one; the first failure aborts and
re-raises. Items already written stay written (no compensation), no history
is recorded and the session is kept so the user can retry. Setting the same
quantity again is harmless, so a retry is safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ...constants import UNCATEGORIZED
from ...database.repositories.so_history_repo import (
    SOHistoryLine,
    SOHistoryRecord,
    build_record,
)
from ...database.repositories.so_session_repo import SOWorkingItem
from ...errors import DomainError, NotFoundError, PersistenceError, ValidationError
from ...utils.helpers import fmt_duration, fmt_money, now_iso, to_decimal
from ...utils.loggers import get_audit_logger, log_event

__all__ = [
    "DifferenceType",
    "SOSessionMeta",
    "SOSummary",
    "compute_difference",
    "compute_line_total",
    "classify_difference",
    "to_history_line",
    "summarize",
    "fmt_rp_signed",
    "sort_by_category",
    "display_order",
    "ReconciliationEngine",
]

_log = logging.getLogger(__name__)


class DifferenceType(str, Enum):
    PLUS = "plus"
    MINUS = "minus"
    MATCH = "match"


# -----------------------------
# Per-item math
# -----------------------------

def compute_difference(item: SOWorkingItem) -> int:
    """physical - system. Negative is a shortage, positive an overage, 0 a match."""
    return int(item.physical_qty) - int(item.system_qty)


def compute_line_total(item: SOWorkingItem) -> Decimal:
    """difference * price; shortages give negative totals."""
    return compute_difference(item) * to_decimal(item.price)


def classify_difference(item: SOWorkingItem) -> DifferenceType:
    diff = compute_difference(item)
    if diff > 0:
        return DifferenceType.PLUS
    if diff < 0:
        return DifferenceType.MINUS
    return DifferenceType.MATCH


def to_history_line(item: SOWorkingItem) -> SOHistoryLine:
    return SOHistoryLine(
        code=item.code,
        name=item.name,
        system_qty=int(item.system_qty),
        physical_qty=int(item.physical_qty),
        difference=compute_difference(item),
        price=to_decimal(item.price),
        total=compute_line_total(item),
    )


# -----------------------------
# Report aggregates
# -----------------------------

@dataclass(frozen=True)
class SOSessionMeta:
    user_id: str
    user_name: str
    start_time: datetime


@dataclass(frozen=True)
class SOSummary:
    total_items: int
    items_with_discrepancies: int
    total_plus_items: int
    total_minus_items: int
    total_qty_difference: int
    total_rp_difference: Decimal
    total_plus_value: Decimal
    total_minus_value: Decimal
    largest_minus_item: Optional[SOHistoryLine]
    largest_plus_item: Optional[SOHistoryLine]
    total_inventory_items: int
    percentage_so: float
    duration_seconds: int = 0

    @property
    def percentage_text(self) -> str:
        return f"{round(self.percentage_so * 100)}%"

    @property
    def duration_text(self) -> str:
        return fmt_duration(self.duration_seconds)

    @property
    def total_rp_text(self) -> str:
        return fmt_rp_signed(self.total_rp_difference)

    @property
    def total_plus_text(self) -> str:
        return fmt_rp_signed(self.total_plus_value)

    @property
    def total_minus_text(self) -> str:
        return fmt_rp_signed(self.total_minus_value)


def fmt_rp_signed(amount: Decimal) -> str:
    """Report money text: '+Rp 3,000' / '-Rp 6,000'; zero shows as '+Rp 0'."""
    sign = "+" if amount >= 0 else "-"
    return f"{sign}Rp {fmt_money(abs(amount))}"


def summarize(
    items: Sequence[SOWorkingItem],
    total_inventory_items: int,
    duration_seconds: int = 0,
) -> SOSummary:
    """
    Aggregate figures for the report screen.

    largest_minus_item / largest_plus_item are the most negative / most
    positive differences; on a tie the earliest item in `items` wins.
    percentage_so is len(items) / total_inventory_items (0.0 for an empty catalog).
    """
    lines = [to_history_line(it) for it in items]

    largest_minus: Optional[SOHistoryLine] = None
    largest_plus: Optional[SOHistoryLine] = None
    for ln in lines:
        if ln.difference < 0 and (largest_minus is None or ln.difference < largest_minus.difference):
            largest_minus = ln
        if ln.difference > 0 and (largest_plus is None or ln.difference > largest_plus.difference):
            largest_plus = ln

    plus = [ln for ln in lines if ln.difference > 0]
    minus = [ln for ln in lines if ln.difference < 0]

    return SOSummary(
        total_items=len(lines),
        items_with_discrepancies=len(plus) + len(minus),
        total_plus_items=len(plus),
        total_minus_items=len(minus),
        total_qty_difference=sum(ln.difference for ln in lines),
        total_rp_difference=sum((ln.total for ln in lines), Decimal("0")),
        total_plus_value=sum((ln.total for ln in plus), Decimal("0")),
        total_minus_value=sum((ln.total for ln in minus), Decimal("0")),
        largest_minus_item=largest_minus,
        largest_plus_item=largest_plus,
        total_inventory_items=int(total_inventory_items),
        percentage_so=(len(lines) / total_inventory_items) if total_inventory_items > 0 else 0.0,
        duration_seconds=max(0, int(duration_seconds)),
    )


# -----------------------------
# Display ordering
# -----------------------------

def _category_key(item: SOWorkingItem):
    return (item.category or UNCATEGORIZED, item.name)


def sort_by_category(items: Sequence[SOWorkingItem]) -> List[SOWorkingItem]:
    """Category then name, both ascending; a missing category sorts as 'Uncategorized'."""
    return sorted(items, key=_category_key)


def display_order(items: Sequence[SOWorkingItem], mismatches_only: bool = False) -> List[SOWorkingItem]:
    """
    All items sorted by category/name, or with `mismatches_only` the minus
    group followed by the plus group (matches dropped), each sorted the same way.
    """
    if not mismatches_only:
        return sort_by_category(items)
    minus = [it for it in items if classify_difference(it) is DifferenceType.MINUS]
    plus = [it for it in items if classify_difference(it) is DifferenceType.PLUS]
    return sort_by_category(minus) + sort_by_category(plus)


# -----------------------------
# Engine
# -----------------------------

class ReconciliationEngine:
    """
    Applies a finished count to inventory and records it.

    Collaborators are injected: `inventory` (gateway), `history`
    (SOHistoryRepo-like, append), `sessions` (SOSessionRepo-like, discard).
    """

    compute_difference = staticmethod(compute_difference)
    compute_line_total = staticmethod(compute_line_total)
    classify_difference = staticmethod(classify_difference)

    def __init__(
        self,
        inventory,
        history,
        sessions,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[logging.Logger] = None,
    ) -> None:
        self._inventory = inventory
        self._history = history
        self._sessions = sessions
        self._clock = clock or datetime.now
        self._audit = audit_logger or get_audit_logger()

    # ---- refresh ----

    def refresh_system_quantities(self, items: Sequence[SOWorkingItem]) -> List[SOWorkingItem]:
        """
        Re-read system quantity (and price) for every item, keeping the counted
        physical quantity. Per-item best effort: an item that cannot be fetched
        keeps its previous values.
        """
        refreshed: List[SOWorkingItem] = []
        failed: List[str] = []
        for item in items:
            try:
                current = self._inventory.get_item(item.code)
                if current is None:
                    raise NotFoundError(item.code)
            except Exception as e:
                _log.warning("refresh: keeping previous system qty for %s (%s)", item.code, e)
                failed.append(item.code)
                refreshed.append(item)
                continue

            price = to_decimal(current.price)
            refreshed.append(
                replace(
                    item,
                    system_qty=int(current.quantity),
                    price=price if price else to_decimal(item.price),
                )
            )

        log_event(
            self._audit, "refresh", "done", "System quantities refreshed",
            {"items": len(refreshed), "failed": failed},
        )
        return refreshed

    # ---- finalize ----

    def finalize(self, items: Sequence[SOWorkingItem], meta: SOSessionMeta) -> SOHistoryRecord:
        """
        Write every physical quantity to inventory, then record the session in
        history, then clear the active session. See module docstring for the
        failure policy.
        """
        self._validate(items)
        log_event(self._audit, "finalize", "start", "Finalizing stock opname",
                  {"items": len(items), "user_id": meta.user_id})

        for item in items:
            try:
                self._inventory.set_quantity(item.code, int(item.physical_qty))
            except (NotFoundError, PersistenceError) as e:
                log_event(self._audit, "finalize", "inventory",
                          f"Inventory update failed for {item.code}; finalize aborted",
                          {"code": item.code, "error": str(e)}, level=logging.ERROR)
                raise

        end = self._clock()
        record = build_record(
            [to_history_line(it) for it in items],
            date=now_iso(end),
            user_id=meta.user_id,
            user_name=meta.user_name,
            duration_seconds=int((end - meta.start_time).total_seconds()),
        )
        stored = self._history.append(record, now=end)
        log_event(self._audit, "finalize", "history", "SO history recorded",
                  {"history_id": stored.id, "total_qty_difference": stored.total_qty_difference})

        try:
            self._sessions.discard()
        except PersistenceError:
            # inventory and history are committed; a leftover session is cleared by discard()
            _log.exception("finalize: history %s saved but the session could not be cleared", stored.id)

        log_event(self._audit, "finalize", "done", "Stock opname finalized", {"history_id": stored.id})
        return stored

    # ---- report ----

    def summarize(self, items: Sequence[SOWorkingItem], duration_seconds: int = 0) -> SOSummary:
        try:
            total = self._inventory.count_all()
        except DomainError as e:
            _log.warning("summarize: catalog size unavailable (%s)", e)
            total = 0
        return summarize(items, total, duration_seconds)

    # ---- internals ----

    @staticmethod
    def _validate(items: Sequence[SOWorkingItem]) -> None:
        if not items:
            raise ValidationError("There are no counted items to finalize.")
        seen = set()
        for it in items:
            if int(it.physical_qty) < 0:
                raise ValidationError(f"Physical quantity of '{it.code}' cannot be negative.")
            if it.code in seen:
                raise ValidationError(f"Item '{it.code}' appears more than once.")
            seen.add(it.code)
