# tests/test_database.py
from __future__ import annotations

import sqlite3

import pytest

from stock_opname.constants import SCHEMA_VERSION
from stock_opname.database import get_connection
from stock_opname.database.versioning import get_current_version, set_current_version


def _tables(con):
    return {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}


def test_schema_created_and_stamped(conn):
    assert {"inventory_items", "so_sessions", "so_history", "schema_version"} <= _tables(conn)
    assert get_current_version(conn) == SCHEMA_VERSION
    assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    assert isinstance(conn.execute("SELECT 1 AS one").fetchone(), sqlite3.Row)


def test_in_memory_connection():
    con = get_connection(":memory:")
    try:
        assert "so_history" in _tables(con)
    finally:
        con.close()


def test_reopen_keeps_data_and_existing_version(db_path):
    con = get_connection(db_path)
    con.execute("INSERT INTO inventory_items(code, name, quantity) VALUES ('Z1', 'Zat', 3)")
    set_current_version(con, "0.9.0")
    con.close()

    con = get_connection(db_path)
    try:
        assert con.execute("SELECT quantity FROM inventory_items WHERE code='Z1'").fetchone()[0] == 3
        assert get_current_version(con) == "0.9.0"
    finally:
        con.close()


def test_only_one_session_row_allowed(conn):
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO so_sessions(id, type, start_time, last_step, created_at, updated_at) "
            "VALUES ('another', 'partial', '2025-01-01T00:00:00', 'item_selection', 'x', 'x')"
        )


def test_session_type_checked(conn):
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO so_sessions(id, type, start_time, last_step, created_at, updated_at) "
            "VALUES ('current_so_session', 'weekly', '2025-01-01T00:00:00', 'item_selection', 'x', 'x')"
        )
