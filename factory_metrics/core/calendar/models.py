"""
Local Calendar

Maps absolute instants onto the site's calendar days and months, and maps
calendar keys back onto half-open UTC intervals.

The site clock is a fixed UTC offset (Asia/Kuala_Lumpur is UTC+08:00 with no
daylight saving). Bucketing always uses the fixed offset, so every local day
is exactly 24 hours wide and starts at local midnight.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Tuple, Union

import pytz

from factory_metrics.core.errors import InvalidDateKey, InvalidDateRange

DayLike = Union[str, date]

_DAY_KEY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_MONTH_KEY_PATTERN = re.compile(r'^\d{4}-\d{2}$')

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class LocalCalendar:
    """
    Calendar of one physical site.

    Attributes:
        timezone_name: Display name of the site timezone (e.g. 'Asia/Kuala_Lumpur')
        utc_offset_minutes: Fixed offset from UTC in minutes (480 for UTC+08:00)
    """
    timezone_name: str = "Asia/Kuala_Lumpur"
    utc_offset_minutes: int = 480

    def __post_init__(self):
        """Validate offset"""
        if not -24 * 60 < self.utc_offset_minutes < 24 * 60:
            raise ValueError(
                f"UTC offset must be within ±24h, got {self.utc_offset_minutes} minutes"
            )

    @property
    def tzinfo(self):
        """Fixed-offset tzinfo for the site clock"""
        return pytz.FixedOffset(self.utc_offset_minutes)

    # ------------------------------------------------------------------
    # Instant -> calendar key
    # ------------------------------------------------------------------

    def to_local(self, instant: datetime) -> datetime:
        """
        Convert an instant to site-local wall-clock time.

        Naive datetimes are read as UTC, which is how instants are persisted.
        """
        if instant.tzinfo is None:
            instant = pytz.UTC.localize(instant)
        return instant.astimezone(self.tzinfo)

    def local_date(self, instant: Union[datetime, date]) -> date:
        """Calendar date of an instant in the site timezone."""
        if isinstance(instant, datetime):
            return self.to_local(instant).date()
        # Plain dates come from date-typed columns and already name a local day
        return instant

    def day_key(self, instant: Union[datetime, date]) -> str:
        """'YYYY-MM-DD' of the local day containing the instant."""
        return self.local_date(instant).isoformat()

    def month_key(self, instant: Union[datetime, date]) -> str:
        """'YYYY-MM' of the local month containing the instant."""
        return self.day_key(instant)[:7]

    def today_key(self, now: Optional[datetime] = None) -> str:
        """Day key of 'now' (defaults to the current UTC time)."""
        return self.day_key(now or datetime.now(pytz.UTC))

    # ------------------------------------------------------------------
    # Calendar key parsing
    # ------------------------------------------------------------------

    def parse_day_key(self, value: DayLike) -> date:
        """
        Parse a day key into a date.

        Args:
            value: 'YYYY-MM-DD' string, a date, or an instant (mapped to its local day)

        Returns:
            The calendar date

        Raises:
            InvalidDateKey: If the value is not a valid calendar date
        """
        if isinstance(value, datetime):
            return self.local_date(value)
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not _DAY_KEY_PATTERN.match(value):
            raise InvalidDateKey(f"Invalid day key: {value!r} (expected YYYY-MM-DD)")
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as e:
            raise InvalidDateKey(f"Invalid day key: {value!r} ({e})") from e

    def parse_month_key(self, value: str) -> date:
        """
        Parse a month key into the first date of that month.

        Raises:
            InvalidDateKey: If the value is not a valid 'YYYY-MM' key
        """
        if not isinstance(value, str) or not _MONTH_KEY_PATTERN.match(value):
            raise InvalidDateKey(f"Invalid month key: {value!r} (expected YYYY-MM)")
        try:
            return datetime.strptime(value, "%Y-%m").date()
        except ValueError as e:
            raise InvalidDateKey(f"Invalid month key: {value!r} ({e})") from e

    def month_of(self, day: DayLike) -> str:
        """Month key of a day key."""
        return self.parse_day_key(day).isoformat()[:7]

    # ------------------------------------------------------------------
    # Calendar key -> UTC bounds
    # ------------------------------------------------------------------

    def _local_midnight_utc(self, day: date) -> datetime:
        local_midnight = datetime(day.year, day.month, day.day, tzinfo=self.tzinfo)
        return local_midnight.astimezone(pytz.UTC)

    def day_bounds_utc(self, day: DayLike) -> Tuple[datetime, datetime]:
        """
        Half-open UTC interval [start, end) covering one local day.

        Example:
            >>> start, end = LocalCalendar().day_bounds_utc("2025-03-01")
            >>> start.isoformat(), end.isoformat()
            ('2025-02-28T16:00:00+00:00', '2025-03-01T16:00:00+00:00')
        """
        start = self._local_midnight_utc(self.parse_day_key(day))
        return start, start + ONE_DAY

    def month_bounds_utc(self, month: str) -> Tuple[datetime, datetime]:
        """Half-open UTC interval [start, end) covering one local month."""
        first = self.parse_month_key(month)
        if first.month == 12:
            next_first = date(first.year + 1, 1, 1)
        else:
            next_first = date(first.year, first.month + 1, 1)
        return self._local_midnight_utc(first), self._local_midnight_utc(next_first)

    def range_bounds_utc(self, start: DayLike, end: DayLike) -> Tuple[datetime, datetime]:
        """
        Half-open UTC interval covering the inclusive local day range [start, end].

        Raises:
            InvalidDateKey: If either key is invalid
            InvalidDateRange: If end precedes start
        """
        start_day, end_day = self.parse_range(start, end)
        return self.day_bounds_utc(start_day)[0], self.day_bounds_utc(end_day)[1]

    def parse_range(self, start: DayLike, end: DayLike) -> Tuple[date, date]:
        """Parse an inclusive day range, rejecting reversed ranges."""
        start_day = self.parse_day_key(start)
        end_day = self.parse_day_key(end)
        if end_day < start_day:
            raise InvalidDateRange(
                f"End date ({end_day.isoformat()}) must not precede start date ({start_day.isoformat()})"
            )
        return start_day, end_day

    def iter_day_keys(self, start: DayLike, end: DayLike) -> Iterator[str]:
        """Yield every day key in the inclusive range."""
        current, end_day = self.parse_range(start, end)
        while current <= end_day:
            yield current.isoformat()
            current += ONE_DAY

    def __repr__(self) -> str:
        sign = "+" if self.utc_offset_minutes >= 0 else "-"
        hours, minutes = divmod(abs(self.utc_offset_minutes), 60)
        return f"LocalCalendar({self.timezone_name}, UTC{sign}{hours:02d}:{minutes:02d})"
