from __future__ import annotations

"""
Repository for the inventory catalog as seen by stock opname.

This is the InventoryGateway the reconciliation engine consumes:
  - get_item(code)          -> InventoryItem | None
  - set_quantity(code, qty) -> None (raises NotFoundError / PersistenceError)
  - count_all()             -> int

Any object exposing those three methods can stand in for it (tests do).
"""

import logging
import sqlite3
from dataclasses import dataclass
from decimal import Decimal

from ...errors import NotFoundError, PersistenceError
from ...utils.helpers import now_iso, to_decimal

_log = logging.getLogger(__name__)


@dataclass
class InventoryItem:
    code: str
    name: str
    sku: str | None = None
    category: str | None = None
    price: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    quantity: int = 0
    reorder_level: int = 0


class InventoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # Gateway operations
    # ------------------------------------------------------------------
    def get_item(self, code: str) -> InventoryItem | None:
        try:
            r = self.conn.execute(
                "SELECT code, name, sku, category, price, cost, quantity, reorder_level "
                "FROM inventory_items WHERE code=?",
                (code,),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read inventory item '{code}': {e}") from e
        return self._row_to_item(r) if r else None

    def set_quantity(self, code: str, quantity: int) -> None:
        """
        Overwrite the on-hand quantity of one item. Setting the same target
        twice is harmless, which keeps a retried finalize safe.
        """
        try:
            cur = self.conn.execute(
                "UPDATE inventory_items SET quantity=?, updated_at=? WHERE code=?",
                (int(quantity), now_iso(), code),
            )
            if cur.rowcount == 0:
                raise NotFoundError(code)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Could not update quantity of '{code}': {e}") from e
        _log.debug("inventory %s quantity set to %s", code, quantity)

    def count_all(self) -> int:
        try:
            row = self.conn.execute("SELECT COUNT(*) FROM inventory_items").fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not count inventory items: {e}") from e
        return int(row[0])

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_item(r: sqlite3.Row) -> InventoryItem:
        return InventoryItem(
            code=r["code"],
            name=r["name"],
            sku=r["sku"],
            category=r["category"],
            price=to_decimal(r["price"]),
            cost=to_decimal(r["cost"]),
            quantity=int(r["quantity"] or 0),
            reorder_level=int(r["reorder_level"] or 0),
        )
