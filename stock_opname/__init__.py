"""
Stock Opname (physical stock count) core for the POS / inventory app.

Session lifecycle, reconciliation against recorded inventory and
historical discrepancy trend analysis. The UI talks to this package
through `modules.stock_opname.service.StockOpnameService`.
"""

__version__ = "1.0.0"
