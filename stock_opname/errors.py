"""Domain errors raised by the stock opname core."""

from __future__ import annotations


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""
    pass


class ConflictError(DomainError):
    """A stock opname session is already active."""
    pass


class NotFoundError(DomainError):
    """Inventory item missing during refresh/finalize."""

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        super().__init__(message or f"Inventory item '{code}' was not found.")


class PersistenceError(DomainError):
    """Storage read/write failure."""
    pass


class ParseError(DomainError):
    """Stored data (session items, history entry) could not be decoded."""
    pass


class ValidationError(DomainError):
    """Working list rejected before any inventory write."""
    pass
