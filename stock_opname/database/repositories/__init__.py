# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from stock_opname.database.repositories import (
        # Inventory (gateway consumed by reconciliation)
        InventoryRepo, InventoryItem,
        # In-progress session
        SOSessionRepo, SOSession, SOWorkingItem, SOType, SOStep,
        # Finalized sessions
        SOHistoryRepo, SOHistoryRecord, SOHistoryLine,
    )
"""

# ---------------- Inventory ----------------
from .inventory_repo import InventoryRepo, InventoryItem

# ------------- SO session (draft) ----------
from .so_session_repo import (
    SOSessionRepo,
    SOSession,
    SOWorkingItem,
    SOType,
    SOStep,
)

# --------------- SO history ----------------
from .so_history_repo import (
    SOHistoryRepo,
    SOHistoryRecord,
    SOHistoryLine,
    build_record,
)

__all__ = [
    # inventory_repo
    "InventoryRepo",
    "InventoryItem",
    # so_session_repo
    "SOSessionRepo",
    "SOSession",
    "SOWorkingItem",
    "SOType",
    "SOStep",
    # so_history_repo
    "SOHistoryRepo",
    "SOHistoryRecord",
    "SOHistoryLine",
    "build_record",
]
