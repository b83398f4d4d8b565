from __future__ import annotations

"""
Append/delete-only ledger of finalized stock opname sessions.

One row per completed count. Rows are never updated (a trigger enforces it);
the only way out is delete_by_ids(). The item snapshots are stored as a JSON
list of flat objects:

    {code, name, systemQty, physicalQty, difference, price, total}

Conventions:
- `date` is an ISO-8601 timestamp; list_all() orders by it, newest first.
- Ids look like SO-YYYYMMDDHHMMSS, with -1, -2, ... appended on collision.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ...constants import HISTORY_ID_PREFIX
from ...errors import ParseError, PersistenceError
from ...utils.helpers import json_number, now_iso, to_decimal

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SOHistoryLine:
    code: str
    name: str
    system_qty: int
    physical_qty: int
    difference: int
    price: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "systemQty": self.system_qty,
            "physicalQty": self.physical_qty,
            "difference": self.difference,
            "price": json_number(self.price),
            "total": json_number(self.total),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SOHistoryLine":
        return cls(
            code=str(d["code"]),
            name=str(d.get("name") or ""),
            system_qty=int(d.get("systemQty") or 0),
            physical_qty=int(d.get("physicalQty") or 0),
            difference=int(d["difference"]),
            price=to_decimal(d.get("price")),
            total=to_decimal(d.get("total")),
        )


def lines_to_json(lines: Sequence[SOHistoryLine]) -> str:
    return json.dumps([ln.to_dict() for ln in lines], ensure_ascii=False)


@dataclass(frozen=True)
class SOHistoryRecord:
    """
    Immutable snapshot of a completed count. `items_json` is kept exactly as
    stored; lines() decodes it and raises ParseError on corrupt data so
    readers can decide to skip the record.
    """
    id: str | None
    date: str
    user_id: str
    user_name: str
    total_items: int
    total_qty_difference: int
    total_rp_difference: Decimal
    duration_seconds: int
    items_json: str
    created_at: str | None = None

    def lines(self) -> List[SOHistoryLine]:
        try:
            raw = json.loads(self.items_json)
            if not isinstance(raw, list):
                raise ValueError("expected a JSON list")
            return [SOHistoryLine.from_dict(d) for d in raw]
        except (ValueError, TypeError, KeyError) as e:
            raise ParseError(f"SO history {self.id}: corrupt item list ({e})") from e

    @property
    def collision_index(self) -> int:
        """n for ids stored as SO-YYYYMMDDHHMMSS-n, 0 for the base id."""
        if not self.id:
            return 0
        _, sep, tail = self.id[len(HISTORY_ID_PREFIX):].rpartition("-")
        return int(tail) if sep and tail.isdigit() else 0

    def parsed_date(self) -> datetime:
        try:
            return datetime.fromisoformat(self.date.replace("Z", "+00:00"))
        except (AttributeError, ValueError) as e:
            raise ParseError(f"SO history {self.id}: bad date {self.date!r}") from e


class SOHistoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Queries ----------------------------------------------------------

    def list_all(self) -> List[SOHistoryRecord]:
        """Newest first; same-second records by collision suffix (-10 after -9)."""
        try:
            rows = self.conn.execute(
                f"SELECT {self._COLUMNS} FROM so_history ORDER BY date DESC, id DESC"
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read SO history: {e}") from e
        records = [self._row_to_record(r) for r in rows]
        records.sort(key=lambda rec: (rec.date, rec.collision_index), reverse=True)
        return records

    def get(self, history_id: str) -> SOHistoryRecord | None:
        try:
            r = self.conn.execute(
                f"SELECT {self._COLUMNS} FROM so_history WHERE id=?",
                (history_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read SO history {history_id}: {e}") from e
        return self._row_to_record(r) if r else None

    # ---- Mutations --------------------------------------------------------

    def append(self, record: SOHistoryRecord, *, now: Optional[datetime] = None) -> SOHistoryRecord:
        """
        Persist a finalized session and return it with its assigned id.
        Any id already on `record` is ignored.
        """
        now = now or datetime.now()
        try:
            new_id = self._next_id(now)
            stored = replace(record, id=new_id, created_at=now_iso(now))
            self.conn.execute(
                """
                INSERT INTO so_history
                    (id, date, user_id, user_name, total_items, total_qty_difference,
                     total_rp_difference, duration_seconds, items, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.id,
                    stored.date,
                    stored.user_id,
                    stored.user_name,
                    int(stored.total_items),
                    int(stored.total_qty_difference),
                    json_number(to_decimal(stored.total_rp_difference)),
                    int(stored.duration_seconds),
                    stored.items_json,
                    stored.created_at,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not save SO history: {e}") from e
        _log.info("SO history %s recorded (%d items)", stored.id, stored.total_items)
        return stored

    def delete_by_ids(self, ids: Iterable[str]) -> int:
        """Permanently delete the given records. Returns the number removed."""
        ids = [str(i) for i in ids]
        if not ids:
            return 0
        placeholders = ",".join("?" for _ in ids)
        try:
            cur = self.conn.execute(f"DELETE FROM so_history WHERE id IN ({placeholders})", ids)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not delete SO history: {e}") from e
        _log.info("Deleted %d SO history record(s)", cur.rowcount)
        return int(cur.rowcount)

    # ---- Internal helpers -------------------------------------------------

    _COLUMNS = (
        "id, date, user_id, user_name, total_items, total_qty_difference, "
        "total_rp_difference, duration_seconds, items, created_at"
    )

    def _next_id(self, now: datetime) -> str:
        base = f"{HISTORY_ID_PREFIX}{now:%Y%m%d%H%M%S}"
        candidate, suffix = base, 1
        while self._exists(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _exists(self, history_id: str) -> bool:
        return self.conn.execute(
            "SELECT 1 FROM so_history WHERE id=?", (history_id,)
        ).fetchone() is not None

    @staticmethod
    def _row_to_record(r: sqlite3.Row) -> SOHistoryRecord:
        return SOHistoryRecord(
            id=r["id"],
            date=r["date"],
            user_id=r["user_id"],
            user_name=r["user_name"],
            total_items=int(r["total_items"]),
            total_qty_difference=int(r["total_qty_difference"]),
            total_rp_difference=to_decimal(r["total_rp_difference"]),
            duration_seconds=int(r["duration_seconds"]),
            items_json=r["items"],
            created_at=r["created_at"],
        )


def build_record(
    lines: Sequence[SOHistoryLine],
    *,
    date: str,
    user_id: str,
    user_name: str,
    duration_seconds: int,
) -> SOHistoryRecord:
    """Assemble an unsaved record; totals are exact sums over `lines`."""
    totals: Tuple[int, Decimal] = (
        sum(ln.difference for ln in lines),
        sum((ln.total for ln in lines), Decimal("0")),
    )
    return SOHistoryRecord(
        id=None,
        date=date,
        user_id=user_id,
        user_name=user_name,
        total_items=len(lines),
        total_qty_difference=totals[0],
        total_rp_difference=totals[1],
        duration_seconds=max(0, int(duration_seconds)),
        items_json=lines_to_json(lines),
    )
