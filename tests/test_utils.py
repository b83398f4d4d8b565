# tests/test_utils.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal

import pytest

from stock_opname.utils.helpers import fmt_duration, fmt_money, json_number, now_iso, to_decimal
from stock_opname.utils.loggers import JsonLineFormatter, log_event
from stock_opname.utils.validators import non_empty, parse_qty, try_parse_int


# ---- validators ----

@pytest.mark.parametrize("raw, expected", [
    (None, 0), ("", 0), ("   ", 0), ("0", 0), ("12", 12), (" 7 ", 7), ("3.0", 3), (5, 5),
])
def test_parse_qty_accepts(raw, expected):
    assert parse_qty(raw) == expected


@pytest.mark.parametrize("raw", ["-1", "1.5", "abc", "1e400x", -3])
def test_parse_qty_rejects(raw):
    with pytest.raises(ValueError):
        parse_qty(raw)


def test_try_parse_int_rejects_bool():
    assert try_parse_int(True) == (False, None)
    assert try_parse_int("42") == (True, 42)


def test_non_empty():
    assert non_empty(" x ")
    assert not non_empty("  ")
    assert not non_empty(None)


# ---- helpers ----

def test_now_iso_drops_microseconds():
    assert now_iso(datetime(2025, 3, 14, 10, 30, 5, 999999)) == "2025-03-14T10:30:05"


def test_to_decimal():
    assert to_decimal(1.1) == Decimal("1.1")
    assert to_decimal("3500") == Decimal("3500")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("n/a", default=Decimal("-1")) == Decimal("-1")


def test_json_number():
    assert json_number(Decimal("3500.00")) == 3500
    assert isinstance(json_number(Decimal("3500.00")), int)
    assert json_number(Decimal("1250.5")) == 1250.5


def test_fmt_duration_and_money():
    assert fmt_duration(0) == "0 min 0 sec"
    assert fmt_duration(3725) == "62 min 5 sec"
    assert fmt_duration(-5) == "0 min 0 sec"
    assert fmt_money(Decimal("-103000")) == "-103,000"
    assert fmt_money("abc", sentinel="N/A") == "N/A"
    with pytest.raises(ValueError):
        fmt_money("abc", strict=True)


# ---- audit logging ----

def test_log_event_attaches_event_without_overriding_keys(caplog):
    logger = logging.getLogger("stock_opname.tests.audit")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, "finalize", "done", "Stock opname finalized",
                  {"history_id": "SO-1", "op": "ignored", "total": Decimal("-3000")})

    (rec,) = caplog.records
    assert rec.so_event == {"op": "finalize", "phase": "done", "history_id": "SO-1", "total": Decimal("-3000")}

    line = json.loads(JsonLineFormatter().format(rec))
    assert line["msg"] == "Stock opname finalized"
    assert line["level"] == "INFO"
    assert line["event"]["history_id"] == "SO-1"
    assert line["event"]["total"] == "-3000"
    assert line["ts"].endswith("+00:00")
