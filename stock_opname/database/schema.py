from __future__ import annotations

import logging
import sqlite3
import sys
from pathlib import Path

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== INVENTORY ======================== */

CREATE TABLE IF NOT EXISTS inventory_items (
    code          TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    sku           TEXT,
    category      TEXT,
    price         NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(price AS REAL) >= 0),
    cost          NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(cost AS REAL) >= 0),
    quantity      INTEGER NOT NULL DEFAULT 0,
    reorder_level INTEGER NOT NULL DEFAULT 0 CHECK (reorder_level >= 0),
    updated_at    TEXT
);
CREATE INDEX IF NOT EXISTS idx_inventory_items_category ON inventory_items(category);

/* ======================== STOCK OPNAME ======================== */

/* -------- in-progress session (single row) -------- */
CREATE TABLE IF NOT EXISTS so_sessions (
    id         TEXT PRIMARY KEY CHECK (id = 'current_so_session'),
    type       TEXT NOT NULL CHECK (type IN ('partial','grand')),
    start_time TEXT NOT NULL,
    last_step  TEXT NOT NULL CHECK (last_step IN ('item_selection','reconciliation')),
    items      TEXT NOT NULL DEFAULT '[]',  /* JSON list of working items */
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

/* -------- finalized sessions (append/delete only) -------- */
CREATE TABLE IF NOT EXISTS so_history (
    id                   TEXT PRIMARY KEY,
    date                 TEXT NOT NULL,
    user_id              TEXT NOT NULL,
    user_name            TEXT NOT NULL,
    total_items          INTEGER NOT NULL,
    total_qty_difference INTEGER NOT NULL,
    total_rp_difference  NUMERIC NOT NULL,
    duration_seconds     INTEGER NOT NULL CHECK (duration_seconds >= 0),
    items                TEXT NOT NULL,     /* JSON list of item snapshots */
    created_at           TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_so_history_date ON so_history(date);

DROP TRIGGER IF EXISTS trg_so_history_no_update;
CREATE TRIGGER trg_so_history_no_update
BEFORE UPDATE ON so_history
BEGIN
  SELECT RAISE(ABORT, 'SO history records are immutable');
END;
"""

_log = logging.getLogger(__name__)


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)
    conn.commit()


def init_schema(db_path: Path | str) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
    _log.info("Schema applied to %s", db_path)


if __name__ == "__main__":
    from ..config import DB_PATH
    from ..utils.loggers import get_logger

    get_logger("stock_opname")
    target = sys.argv[1] if len(sys.argv) > 1 else DB_PATH
    init_schema(target)
