"""
Calendar Range Filtering Utilities

Functions to restrict observations and records to an inclusive local day range,
and to validate requested ranges before any data is fetched.
"""

import logging
from datetime import date
from typing import Callable, Iterable, List, Tuple, TypeVar

from factory_metrics.core.calendar.models import DayLike, LocalCalendar
from factory_metrics.core.errors import RangeTooLarge

logger = logging.getLogger(__name__)

T = TypeVar("T")


def filter_by_day_range(
    items: Iterable[T],
    calendar: LocalCalendar,
    start: DayLike,
    end: DayLike,
    instant_of: Callable[[T], object] = lambda item: item.instant
) -> List[Tuple[str, T]]:
    """
    Pair each item with its local day key, keeping only days inside [start, end].

    Args:
        items: Observations or ratio records
        calendar: Site calendar used for bucketing
        start: First day of the range (inclusive)
        end: Last day of the range (inclusive)
        instant_of: Accessor returning the item's instant

    Returns:
        List of (day_key, item) pairs in input order

    Example:
        >>> pairs = filter_by_day_range(observations, calendar, "2025-03-01", "2025-03-31")
        >>> days = {day for day, _ in pairs}
    """
    start_day, end_day = calendar.parse_range(start, end)
    start_key, end_key = start_day.isoformat(), end_day.isoformat()

    kept = []
    for item in items:
        day = calendar.day_key(instant_of(item))
        # ISO day keys order lexicographically
        if start_key <= day <= end_key:
            kept.append((day, item))
    return kept


def validate_date_range(
    calendar: LocalCalendar,
    start: DayLike,
    end: DayLike,
    max_days: int
) -> Tuple[date, date]:
    """
    Validate a requested report range.

    Args:
        calendar: Site calendar
        start: First day (inclusive)
        end: Last day (inclusive)
        max_days: Largest number of days a single request may span

    Returns:
        Tuple of (start_date, end_date)

    Raises:
        InvalidDateKey: If either key fails to parse
        InvalidDateRange: If end precedes start
        RangeTooLarge: If the range spans more than max_days days
    """
    start_day, end_day = calendar.parse_range(start, end)
    span_days = (end_day - start_day).days + 1

    if span_days > max_days:
        raise RangeTooLarge(
            f"Range too large ({span_days} days > {max_days}) - please select a smaller range"
        )

    if span_days > 93:
        logger.info(f"Large range requested ({span_days} days) - aggregation may take longer")

    return start_day, end_day
