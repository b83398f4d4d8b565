from __future__ import annotations

"""
Durable single-slot store for the in-progress stock opname session.

The so_sessions table holds at most one row (fixed id). There is no stored
"completed" state: completion deletes the row after the history record is
written.

    NoSession -> Active(item_selection) <-> Active(reconciliation) -> NoSession
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ...constants import CURRENT_SESSION_ID
from ...errors import ConflictError, ParseError, PersistenceError
from ...utils.helpers import json_number, now_iso, to_decimal

_log = logging.getLogger(__name__)


class SOType(str, Enum):
    PARTIAL = "partial"
    GRAND = "grand"


class SOStep(str, Enum):
    ITEM_SELECTION = "item_selection"
    RECONCILIATION = "reconciliation"


# Both count types open on item selection.
_INITIAL_STEP = {
    SOType.PARTIAL: SOStep.ITEM_SELECTION,
    SOType.GRAND: SOStep.ITEM_SELECTION,
}


@dataclass
class SOWorkingItem:
    code: str
    name: str
    sku: str | None = None
    category: str | None = None
    price: Decimal = Decimal("0")
    system_qty: int = 0
    physical_qty: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # camelCase keys: stored format shared with older clients
        return {
            "code": self.code,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "price": json_number(to_decimal(self.price)),
            "systemQty": int(self.system_qty),
            "physicalQty": int(self.physical_qty),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SOWorkingItem":
        return cls(
            code=str(d["code"]),
            name=str(d.get("name") or ""),
            sku=d.get("sku"),
            category=d.get("category"),
            price=to_decimal(d.get("price")),
            system_qty=int(d.get("systemQty") or 0),
            physical_qty=int(d.get("physicalQty") or 0),
        )


@dataclass
class SOSession:
    type: SOType
    start_time: datetime
    last_step: SOStep
    working_items: List[SOWorkingItem] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


def items_to_json(items: Sequence[SOWorkingItem]) -> str:
    return json.dumps([it.to_dict() for it in items], ensure_ascii=False)


def items_from_json(text: str | None) -> List[SOWorkingItem]:
    if not text:
        return []
    try:
        raw = json.loads(text)
        if not isinstance(raw, list):
            raise ValueError("expected a JSON list")
        return [SOWorkingItem.from_dict(d) for d in raw]
    except (ValueError, TypeError, KeyError) as e:
        raise ParseError(f"Stored session items are corrupt: {e}") from e


class SOSessionRepo:
    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Queries ----------------------------------------------------------

    def current(self) -> SOSession | None:
        r = self._fetch_row()
        if r is None:
            return None
        return SOSession(
            type=SOType(r["type"]),
            start_time=datetime.fromisoformat(r["start_time"]),
            last_step=SOStep(r["last_step"]),
            working_items=items_from_json(r["items"]),
            created_at=r["created_at"],
            updated_at=r["updated_at"],
        )

    def has_active(self) -> bool:
        return self._fetch_row() is not None

    # ---- Mutations --------------------------------------------------------

    def start(self, so_type: SOType | str, *, now: Optional[datetime] = None) -> SOSession:
        """
        Create the session. Raises ConflictError when one is already active;
        callers that want a fresh count must discard() first.
        """
        so_type = SOType(so_type)
        if self.has_active():
            raise ConflictError("A stock opname session is already in progress.")

        start_time = (now or datetime.now()).replace(microsecond=0)
        stamp = now_iso()
        session = SOSession(
            type=so_type,
            start_time=start_time,
            last_step=_INITIAL_STEP[so_type],
            working_items=[],
            created_at=stamp,
            updated_at=stamp,
        )
        try:
            self.conn.execute(
                "INSERT INTO so_sessions(id, type, start_time, last_step, items, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    CURRENT_SESSION_ID,
                    session.type.value,
                    start_time.isoformat(),
                    session.last_step.value,
                    "[]",
                    stamp,
                    stamp,
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise ConflictError("A stock opname session is already in progress.") from e
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not start the stock opname session: {e}") from e
        _log.info("Stock opname session started (%s)", session.type.value)
        return session

    def save_draft(self, items: Sequence[SOWorkingItem], last_step: SOStep | str) -> bool:
        """
        Overwrite working items and resume pointer of the active session.

        Returns False (and logs) when there is no active session; a draft save
        may race with discard(). Re-saving an identical payload writes nothing.
        """
        last_step = SOStep(last_step)
        payload = items_to_json(items)
        r = self._fetch_row()
        if r is None:
            _log.warning("save_draft ignored: no active stock opname session")
            return False
        if r["items"] == payload and r["last_step"] == last_step.value:
            return True
        try:
            self.conn.execute(
                "UPDATE so_sessions SET items=?, last_step=?, updated_at=? WHERE id=?",
                (payload, last_step.value, now_iso(), CURRENT_SESSION_ID),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not save the stock opname draft: {e}") from e
        _log.debug("Draft saved: %d items, step=%s", len(items), last_step.value)
        return True

    def discard(self) -> None:
        try:
            cur = self.conn.execute("DELETE FROM so_sessions WHERE id=?", (CURRENT_SESSION_ID,))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not discard the stock opname session: {e}") from e
        if cur.rowcount:
            _log.info("Stock opname session discarded")

    # ---- Internal helpers -------------------------------------------------

    def _fetch_row(self) -> sqlite3.Row | None:
        try:
            return self.conn.execute(
                "SELECT type, start_time, last_step, items, created_at, updated_at "
                "FROM so_sessions WHERE id=?",
                (CURRENT_SESSION_ID,),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read the stock opname session: {e}") from e


__all__ = [
    "SOType",
    "SOStep",
    "SOWorkingItem",
    "SOSession",
    "SOSessionRepo",
    "items_to_json",
    "items_from_json",
]
