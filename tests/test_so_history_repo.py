# tests/test_so_history_repo.py
from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from decimal import Decimal

import pytest

from stock_opname.errors import ParseError


def test_append_assigns_timestamp_id(history, make_record):
    rec = make_record("2025-03-01T09:00:00", {"X001": -2, "X002": 1})
    stored = history.append(rec, now=datetime(2025, 3, 1, 9, 5, 7))

    assert stored.id == "SO-20250301090507"
    assert stored.created_at == "2025-03-01T09:05:07"
    assert stored.total_items == 2
    assert stored.total_qty_difference == -1
    assert stored.total_rp_difference == Decimal("-1000")
    # input record stays unsaved
    assert rec.id is None


def test_append_suffixes_colliding_ids(history, make_record):
    now = datetime(2025, 3, 1, 9, 5, 7)
    ids = [history.append(make_record("2025-03-01T09:00:00", {"X001": 0}), now=now).id for _ in range(3)]
    assert ids == ["SO-20250301090507", "SO-20250301090507-1", "SO-20250301090507-2"]


def test_list_all_newest_first(history, make_record):
    history.append(make_record("2025-01-10T08:00:00", {"X001": -1}), now=datetime(2025, 1, 10, 8))
    history.append(make_record("2025-03-10T08:00:00", {"X001": 1}), now=datetime(2025, 3, 10, 8))
    history.append(make_record("2025-02-10T08:00:00", {"X001": 0}), now=datetime(2025, 2, 10, 8))

    dates = [r.date for r in history.list_all()]
    assert dates == ["2025-03-10T08:00:00", "2025-02-10T08:00:00", "2025-01-10T08:00:00"]


def test_get_by_id_and_lines(history, make_record):
    stored = history.append(make_record("2025-03-01T09:00:00", {"X001": -2}), now=datetime(2025, 3, 1, 9))
    got = history.get(stored.id)
    assert got == stored
    (line,) = got.lines()
    assert line.code == "X001"
    assert line.difference == -2
    assert line.system_qty == 10 and line.physical_qty == 8
    assert line.total == Decimal("-2000")
    assert history.get("SO-missing") is None


def test_items_stored_as_flat_json(history, conn, make_record):
    stored = history.append(make_record("2025-03-01T09:00:00", {"X001": 3}), now=datetime(2025, 3, 1, 9))
    raw = conn.execute("SELECT items FROM so_history WHERE id=?", (stored.id,)).fetchone()[0]
    assert json.loads(raw) == [{
        "code": "X001",
        "name": "Item X001",
        "systemQty": 10,
        "physicalQty": 13,
        "difference": 3,
        "price": 1000,
        "total": 3000,
    }]


def test_delete_by_ids(history, make_record):
    a = history.append(make_record("2025-01-01T08:00:00", {"X001": 0}), now=datetime(2025, 1, 1, 8))
    b = history.append(make_record("2025-01-02T08:00:00", {"X001": 0}), now=datetime(2025, 1, 2, 8))
    c = history.append(make_record("2025-01-03T08:00:00", {"X001": 0}), now=datetime(2025, 1, 3, 8))

    assert history.delete_by_ids([a.id, c.id, "SO-unknown"]) == 2
    assert [r.id for r in history.list_all()] == [b.id]
    assert history.delete_by_ids([]) == 0


def test_history_rows_are_immutable(history, conn, make_record):
    stored = history.append(make_record("2025-01-01T08:00:00", {"X001": 0}), now=datetime(2025, 1, 1, 8))
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("UPDATE so_history SET user_name='someone else' WHERE id=?", (stored.id,))


def test_corrupt_items_raise_parse_error_on_read(history, conn, make_record):
    stored = history.append(make_record("2025-01-01T08:00:00", {"X001": 0}), now=datetime(2025, 1, 1, 8))
    # corrupt row written behind the repository's back
    conn.execute("DROP TRIGGER trg_so_history_no_update")
    conn.execute("UPDATE so_history SET items='[{\"code\": \"X001\"}' WHERE id=?", (stored.id,))
    conn.commit()

    rec = history.get(stored.id)
    with pytest.raises(ParseError):
        rec.lines()


def test_same_second_ids_sort_by_numeric_suffix(history, make_record):
    now = datetime(2025, 3, 1, 9, 5, 7)
    for _ in range(12):
        history.append(make_record("2025-03-01T09:05:07", {"X001": 0}), now=now)

    stored = history.list_all()
    assert [r.collision_index for r in stored] == list(range(11, -1, -1))
    assert stored[0].id == "SO-20250301090507-11"
    assert stored[1].id == "SO-20250301090507-10"
    assert stored[-1].id == "SO-20250301090507"
