# utils/validators.py

def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Quantity parsing ----

def try_parse_int(x):
    """
    Best-effort parse to int. Accepts ints, integral floats and numeric strings
    ("12", " 12 ", "12.0").

    Returns:
        (ok: bool, value: int|None)
    """
    if isinstance(x, bool):
        return False, None
    if isinstance(x, int):
        return True, x
    try:
        f = float(str(x).strip())
    except (TypeError, ValueError):
        return False, None
    if not f.is_integer():
        return False, None
    return True, int(f)


def parse_qty(x) -> int:
    """
    Parse a physical-count input into a quantity.

    A cleared input (None / empty / whitespace) counts as 0. This is
    indistinguishable from "counted and found zero"; kept as-is on purpose.

    Raises ValueError for non-integer or negative input.
    """
    if x is None or not non_empty(x):
        return 0
    ok, val = try_parse_int(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a quantity.")
    if val < 0:
        raise ValueError("Quantity cannot be negative.")
    return val  # type: ignore[return-value]
