# utils/helpers.py
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging
from typing import Union, Optional

NumberLike = Union[Decimal, float, int, str]

_log = logging.getLogger(__name__)


def now_iso(now: Optional[datetime] = None) -> str:
    """Return `now` (default: current local time) as an ISO-8601 string."""
    return (now or datetime.now()).isoformat(timespec="seconds")


def to_decimal(v: NumberLike | None, default: Decimal = Decimal("0")) -> Decimal:
    """
    Best-effort conversion to Decimal. Floats go through str() so 1.1 stays 1.1.
    None and unparsable values return `default`.
    """
    if v is None:
        return default
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        _log.debug("to_decimal: failed to parse %r", v)
        return default


def json_number(v: Decimal) -> Union[int, float]:
    """Integral Decimals become int, everything else float (for JSON/REAL columns)."""
    return int(v) if v == v.to_integral_value() else float(v)


def fmt_duration(seconds: int) -> str:
    """Format a duration as 'M min S sec' (minutes are not wrapped into hours)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60} min {seconds % 60} sec"


def fmt_money(
    v: NumberLike,
    places: int = 0,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.
    Rupiah amounts default to no decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = Decimal(str(v))
        if not x.is_finite():
            raise InvalidOperation(str(v))
    except (InvalidOperation, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as a number: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
