"""Number-to-string policy shared by tables and axis tick labels."""

from __future__ import annotations

from typing import Any, Callable

import pandas as pd

MISSING = "NA"


def _is_missing(value: Any) -> bool:
    return value is None or value is pd.NA or (isinstance(value, float) and value != value)


def comma(value: Any, digits: int = 0) -> str:
    if _is_missing(value):
        return MISSING
    return f"{float(value):,.{digits}f}"


def dollar(value: Any, digits: int = 0) -> str:
    if _is_missing(value):
        return MISSING
    amount = float(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.{digits}f}"


def percent(value: Any, digits: int = 0) -> str:
    """Format a 0-1 ratio as a percentage string."""
    if _is_missing(value):
        return MISSING
    return f"{float(value) * 100:.{digits}f}%"


def number(value: Any, digits: int = 0) -> str:
    if _is_missing(value):
        return MISSING
    return f"{float(value):.{digits}f}"


FORMATTERS: dict[str, Callable[..., str]] = {
    "comma": comma,
    "currency": dollar,
    "percent": percent,
    "number": number,
}


def format_series(series: pd.Series, kind: str, digits: int = 0) -> pd.Series:
    """Pre-format a numeric column for a text table."""
    try:
        formatter = FORMATTERS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown number format '{kind}'") from exc
    return series.astype("object").map(lambda value: formatter(value, digits))
