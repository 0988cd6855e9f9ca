"""
Formatting Utilities

Functions for presenting exact engine results: decimal rounding, row-to-dict
conversion, and DataFrame conversion for downstream exporters.
"""

import logging
from dataclasses import fields, is_dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_PLACES = 4


def format_decimal(value: Optional[Decimal], places: Optional[int] = DEFAULT_PLACES):
    """
    Round a Decimal half-up for presentation and return it as float.

    Args:
        value: Exact engine value (or None)
        places: Decimal places; None keeps full precision

    Returns:
        float, or None for None

    Example:
        >>> format_decimal(Decimal("216.66666666"))
        216.6667
    """
    if value is None:
        return None
    if places is None:
        return float(value)
    quantum = Decimal(1).scaleb(-places)
    return float(value.quantize(quantum, rounding=ROUND_HALF_UP))


def _present(value: Any, places: Optional[int]) -> Any:
    if isinstance(value, Decimal):
        return format_decimal(value, places)
    if isinstance(value, Mapping):
        return {key: _present(item, places) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_present(item, places) for item in value]
    return value


def row_to_dict(row: Any, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
    """
    Convert a result row (dataclass) to a presentation dictionary.

    Decimals are rounded to `places`; everything else is passed through.
    """
    if not is_dataclass(row):
        raise TypeError(f"Expected a dataclass row, got {type(row).__name__}")
    # Rows are flat; read-only mapping attributes are copied by _present
    return {f.name: _present(getattr(row, f.name), places) for f in fields(row)}


def nested_to_dict(nested: Mapping, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
    """Round every Decimal in a nested mapping (e.g. day -> subcategory -> total)."""
    return _present(nested, places)


def rows_to_frame(rows: Iterable[Any], places: Optional[int] = DEFAULT_PLACES) -> pd.DataFrame:
    """
    Convert result rows to a DataFrame for spreadsheet/CSV exporters.

    Args:
        rows: Iterable of result dataclasses
        places: Decimal places for numeric columns; None keeps full precision

    Returns:
        DataFrame with one column per row attribute (empty DataFrame for no rows)

    Example:
        >>> df = rows_to_frame(report.daily_by_category)
        >>> df.columns.tolist()
        ['day', 'category', 'total']
    """
    records = [row_to_dict(row, places) for row in rows]
    if not records:
        return pd.DataFrame()
    return pd.DataFrame.from_records(records)


def nested_to_frame(
    nested: Mapping[str, Mapping[str, Decimal]],
    outer: str = "day",
    inner: str = "subcategory",
    places: Optional[int] = DEFAULT_PLACES
) -> pd.DataFrame:
    """
    Flatten a two-level mapping (e.g. weighted day -> subcategory -> total) into long format.
    """
    records = [
        {outer: outer_key, inner: inner_key, "total": format_decimal(total, places)}
        for outer_key, inner_map in nested.items()
        for inner_key, total in inner_map.items()
    ]
    if not records:
        return pd.DataFrame(columns=[outer, inner, "total"])
    return pd.DataFrame.from_records(records)
