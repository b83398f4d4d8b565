# modules/stock_opname/__init__.py

from .reconciliation import (
    DifferenceType,
    ReconciliationEngine,
    SOSessionMeta,
    SOSummary,
    classify_difference,
    compute_difference,
    compute_line_total,
    display_order,
    summarize,
)
from .trend_analysis import (
    ConsecutiveRunRecord,
    ItemAnalysis,
    Status,
    TrendAnalyzer,
    TrendReport,
)
from .draft_autosave import DraftAutosaver
from .service import CompletionResult, StockOpnameService

__all__ = [
    "DifferenceType",
    "ReconciliationEngine",
    "SOSessionMeta",
    "SOSummary",
    "classify_difference",
    "compute_difference",
    "compute_line_total",
    "display_order",
    "summarize",
    "ConsecutiveRunRecord",
    "ItemAnalysis",
    "Status",
    "TrendAnalyzer",
    "TrendReport",
    "DraftAutosaver",
    "CompletionResult",
    "StockOpnameService",
]
