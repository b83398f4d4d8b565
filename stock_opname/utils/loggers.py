"""
utils/loggers.py

Purpose
-------
Console logging for the app plus an append-only JSON-lines audit trail
for stock opname operations (finalize, refresh, history purge).

Public API
----------
- get_logger(name="stock_opname") -> logging.Logger
- get_audit_logger(file_path=None) -> logging.Logger
- JsonLineFormatter (audit file format)
- log_event(logger, op, phase, message, extra=None, level=INFO)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..constants import AUDIT_LOGGER_NAME

__all__ = ["get_logger", "get_audit_logger", "log_event"]


def get_logger(name="stock_opname"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


def get_audit_logger(file_path: Optional[str | Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return the audit logger. When `file_path` is given (first call only), audit
    lines are also appended there as JSON; otherwise records propagate to the
    regular `stock_opname` handlers.
    The file handler is attached once per process.
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(level)

    if file_path is None or logger.handlers:
        return logger

    log_file = Path(file_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    fh.setLevel(level)
    fh.setFormatter(JsonLineFormatter())
    logger.addHandler(fh)
    return logger


class JsonLineFormatter(logging.Formatter):
    """One audit line per record: ts (UTC), level, logger, msg, and the event dict."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "so_event", None)
        if isinstance(event, dict):
            line["event"] = event
        # Decimal totals and datetimes are written as text
        return json.dumps(line, ensure_ascii=False, default=str)


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Record one step of a stock opname operation on the audit logger.

    `op` is "refresh", "finalize" or "history"; `phase` names the step
    ("start", "inventory", "history", "done", "purge"). `extra` carries the
    item codes, history ids and counts of that step; it cannot override
    `op` or `phase`.
    """
    event = {**(extra or {}), "op": op, "phase": phase}
    logger.log(level, message, extra={"so_event": event})
