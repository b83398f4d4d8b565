# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures); headless via offscreen
# - Every test gets its own SQLite file under tmp_path (repos commit, so no
#   BEGIN/ROLLBACK sharing)
# - Catalog seeded from tests/seed_common.sql (idempotent)
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (get_connection)
# ---------------------------------------------------------------------

from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import sqlite3
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

import pytest

from stock_opname.database import get_connection
from stock_opname.database.repositories import (
    InventoryRepo,
    SOHistoryLine,
    SOHistoryRecord,
    SOHistoryRepo,
    SOSessionRepo,
    SOWorkingItem,
    build_record,
)
from stock_opname.errors import PersistenceError

# ---------- Paths ----------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SEED_SQL     = PROJECT_ROOT / "tests" / "seed_common.sql"


# ---------- Per-test database ----------
@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "stock_opname.db"


@pytest.fixture()
def conn(db_path: Path):
    """Fresh schema + seeded catalog; closed after the test."""
    con = get_connection(db_path)
    con.executescript(SEED_SQL.read_text(encoding="utf-8"))
    con.commit()
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def inventory(conn: sqlite3.Connection) -> InventoryRepo:
    return InventoryRepo(conn)


@pytest.fixture()
def sessions(conn: sqlite3.Connection) -> SOSessionRepo:
    return SOSessionRepo(conn)


@pytest.fixture()
def history(conn: sqlite3.Connection) -> SOHistoryRepo:
    return SOHistoryRepo(conn)


@pytest.fixture()
def current_user() -> dict:
    return {"user_id": "7", "username": "ops", "role": "admin"}


# ---------- Builders ----------
def working_item(code: str, system_qty: int, physical_qty: int, *, price=1000,
                 name: Optional[str] = None, category: Optional[str] = "General") -> SOWorkingItem:
    return SOWorkingItem(
        code=code,
        name=name or f"Item {code}",
        sku=f"SKU-{code}",
        category=category,
        price=Decimal(str(price)),
        system_qty=system_qty,
        physical_qty=physical_qty,
    )


def history_record(date: str, diffs: Dict[str, int], *, record_id: Optional[str] = None,
                   price: int = 1000) -> SOHistoryRecord:
    """Unsaved (or id-stamped) record whose lines carry the given differences."""
    lines = [
        SOHistoryLine(
            code=code,
            name=f"Item {code}",
            system_qty=10,
            physical_qty=10 + diff,
            difference=diff,
            price=Decimal(price),
            total=Decimal(price * diff),
        )
        for code, diff in diffs.items()
    ]
    rec = build_record(lines, date=date, user_id="7", user_name="ops", duration_seconds=60)
    if record_id is not None:
        rec = replace(rec, id=record_id)
    return rec


@pytest.fixture()
def make_item():
    return working_item


@pytest.fixture()
def make_record():
    return history_record


# ---------- Fakes ----------
class FailingInventory:
    """
    Wraps a real gateway and fails set_quantity / get_item for chosen codes.
    Records every set_quantity attempt.
    """
    def __init__(self, inner, *, fail_set=(), fail_get=()):
        self.inner = inner
        self.fail_set = set(fail_set)
        self.fail_get = set(fail_get)
        self.set_calls = []

    def get_item(self, code):
        if code in self.fail_get:
            raise PersistenceError(f"simulated read failure for {code}")
        return self.inner.get_item(code)

    def set_quantity(self, code, quantity):
        self.set_calls.append((code, quantity))
        if code in self.fail_set:
            raise PersistenceError(f"simulated write failure for {code}")
        self.inner.set_quantity(code, quantity)

    def count_all(self):
        return self.inner.count_all()


@pytest.fixture()
def failing_inventory(inventory):
    def _make(**kw):
        return FailingInventory(inventory, **kw)
    return _make


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    return FixedClock(datetime(2025, 3, 14, 10, 30, 0))
