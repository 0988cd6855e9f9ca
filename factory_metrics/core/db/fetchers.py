"""
Data Fetching Module

Observation stores for the aggregation engine. Every store answers "all rows
whose timestamp falls in [start, end)" and converts rows to Observation /
RatioDayRecord values through the same row adapters:

- PostgresObservationStore: production database through the connection pool
- DataFrameObservationStore: in-memory pandas frames (offline use and tests)
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd
import psycopg2
import pytz
from dateutil import parser as dateutil_parser

from factory_metrics.core.calculations.weighting import to_decimal
from factory_metrics.core.calendar.models import LocalCalendar
from factory_metrics.core.db.pool import get_production_connection
from factory_metrics.core.db.queries import SecureQueryBuilder, secure_query_builder
from factory_metrics.core.domain.models import Observation, RatioDayRecord
from factory_metrics.core.domain.settings import RatioFormula, RecordKind
from factory_metrics.core.errors import StoreError

logger = logging.getLogger(__name__)

Bound = Union[datetime, date]

SITE_CALENDAR = LocalCalendar()


# ============================================================
# ROW ADAPTERS
# ============================================================

def _clean(value: Any) -> Any:
    """Map every flavour of missing value (None, NaN, NaT, pd.NA) to None."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        # Array-like cell values are never missing markers
        pass
    return value


def _coerce_instant(
    value: Any,
    as_date: bool,
    calendar: LocalCalendar = SITE_CALENDAR
) -> Optional[Union[datetime, date]]:
    """
    Normalize a timestamp cell.

    Date columns become datetime.date: aware values are mapped to their site
    local day, naive values keep their own date. Instant columns become aware
    UTC datetimes (naive values are read as UTC).

    Raises:
        ValueError: If the value cannot be read as a timestamp
    """
    value = _clean(value)
    if value is None:
        return None

    if isinstance(value, str):
        value = dateutil_parser.isoparse(value.strip())
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()

    if isinstance(value, datetime):
        if as_date:
            if value.tzinfo is None:
                return value.date()
            return calendar.local_date(value)
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)

    if isinstance(value, date):
        if as_date:
            return value
        return pytz.UTC.localize(datetime(value.year, value.month, value.day))

    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _product(row: Mapping[str, Any], left: str, right: str) -> Optional[Decimal]:
    """Product of two numeric cells; absent when either factor is absent."""
    a = to_decimal(_clean(row.get(left)))
    b = to_decimal(_clean(row.get(right)))
    if a is None or b is None:
        return None
    return a * b


def observations_from_rows(
    kind: RecordKind,
    rows: Iterable[Mapping[str, Any]],
    calendar: LocalCalendar = SITE_CALENDAR
) -> List[Observation]:
    """
    Convert source rows to observations of one record kind.

    Pivoted kinds yield one observation per category encoded in the column
    names; product fields are computed per row. Rows without a timestamp are
    skipped.

    Args:
        kind: Record kind describing the source columns
        rows: Mappings of column name -> cell value
        calendar: Site calendar for date-typed timestamp columns

    Returns:
        List of Observation
    """
    observations = []
    skipped = 0

    for row in rows:
        instant = _coerce_instant(row.get(kind.timestamp_column), kind.timestamp_is_date, calendar)
        if instant is None:
            skipped += 1
            continue

        products = {
            name: _product(row, left, right)
            for name, (left, right) in kind.product_fields.items()
        }

        if kind.pivot_columns:
            per_category: Dict[str, Dict[str, Any]] = {}
            for column, (category, field_name) in kind.pivot_columns.items():
                per_category.setdefault(category, {})[field_name] = _clean(row.get(column))
            for category, fields in per_category.items():
                fields.update(products)
                observations.append(Observation(instant=instant, category=category, fields=fields))
            continue

        fields = {
            name: _clean(row.get(name))
            for name in kind.fields
            if name not in kind.product_fields
        }
        fields.update(products)

        subcategory = None
        if kind.subcategory_column:
            subcategory = _clean(row.get(kind.subcategory_column))

        observations.append(
            Observation(
                instant=instant,
                category=_clean(row.get(kind.category_column)),
                fields=fields,
                subcategory=None if subcategory is None else str(subcategory),
            )
        )

    if skipped:
        logger.warning(f"{kind.name}: skipped {skipped} rows without {kind.timestamp_column}")

    return observations


def observations_from_frame(
    kind: RecordKind,
    frame: pd.DataFrame,
    calendar: LocalCalendar = SITE_CALENDAR
) -> List[Observation]:
    """DataFrame flavour of observations_from_rows."""
    if frame.empty:
        return []
    return observations_from_rows(kind, frame.to_dict(orient="records"), calendar)


def ratio_records_from_rows(
    formula: RatioFormula,
    rows: Iterable[Mapping[str, Any]],
    calendar: LocalCalendar = SITE_CALENDAR
) -> List[RatioDayRecord]:
    """
    Convert source rows to daily staffing records of one ratio formula.

    Rows without a timestamp are skipped.
    """
    records = []
    skipped = 0

    for row in rows:
        instant = _coerce_instant(row.get(formula.timestamp_column), formula.timestamp_is_date, calendar)
        if instant is None:
            skipped += 1
            continue

        records.append(
            RatioDayRecord(
                instant=instant,
                normal_workers=_clean(row.get(formula.normal_workers_column)),
                normal_minutes=_clean(row.get(formula.normal_minutes_column)),
                ot_workers=_clean(row.get(formula.ot_workers_column)),
                ot_minutes=_clean(row.get(formula.ot_minutes_column)),
                targets={
                    target: _clean(row.get(column))
                    for target, column in formula.target_columns.items()
                },
            )
        )

    if skipped:
        logger.warning(f"{formula.name}: skipped {skipped} rows without {formula.timestamp_column}")

    return records


def ratio_records_from_frame(
    formula: RatioFormula,
    frame: pd.DataFrame,
    calendar: LocalCalendar = SITE_CALENDAR
) -> List[RatioDayRecord]:
    """DataFrame flavour of ratio_records_from_rows."""
    if frame.empty:
        return []
    return ratio_records_from_rows(formula, frame.to_dict(orient="records"), calendar)


# ============================================================
# STORES
# ============================================================

class ObservationStore:
    """
    Read-only source of raw rows for half-open ranges [start, end).

    Bounds are aware UTC datetimes, or dates for kinds whose timestamp
    column is a plain date.
    """

    def fetch_range(self, kind: RecordKind, start: Bound, end: Bound) -> List[Observation]:
        raise NotImplementedError

    def fetch_ratio_records(self, formula: RatioFormula, start: Bound, end: Bound) -> List[RatioDayRecord]:
        raise NotImplementedError


class PostgresObservationStore(ObservationStore):
    """
    Observation store backed by the production PostgreSQL database.

    Example:
        >>> store = PostgresObservationStore()
        >>> start, end = LocalCalendar().range_bounds_utc("2025-03-01", "2025-03-31")
        >>> observations = store.fetch_range(SEWING, start, end)
    """

    def __init__(
        self,
        connection_factory=get_production_connection,
        query_builder: SecureQueryBuilder = secure_query_builder,
        calendar: LocalCalendar = SITE_CALENDAR
    ):
        self.connection_factory = connection_factory
        self.query_builder = query_builder
        self.calendar = calendar

    def _fetch_frame(
        self,
        table: str,
        columns: Tuple[str, ...],
        timestamp_column: str,
        start: Bound,
        end: Bound
    ) -> pd.DataFrame:
        query, parameters = self.query_builder.build_range_query(
            table, columns, timestamp_column, start, end
        )

        try:
            with self.connection_factory() as conn:
                cursor = conn.cursor()
                cursor.execute(query, parameters)
                data = cursor.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Error fetching {table} rows: {e}", exc_info=True)
            raise StoreError(f"Failed to read {table} for {start} to {end}: {e}") from e

        df = pd.DataFrame(data, columns=list(columns), dtype=object)
        logger.info(f"Fetched {len(df)} {table} rows for {start} to {end}")
        return df

    def fetch_range(self, kind: RecordKind, start: Bound, end: Bound) -> List[Observation]:
        df = self._fetch_frame(kind.table, kind.source_columns, kind.timestamp_column, start, end)
        return observations_from_frame(kind, df, self.calendar)

    def fetch_ratio_records(self, formula: RatioFormula, start: Bound, end: Bound) -> List[RatioDayRecord]:
        df = self._fetch_frame(
            formula.table, formula.source_columns, formula.timestamp_column, start, end
        )
        return ratio_records_from_frame(formula, df, self.calendar)


class DataFrameObservationStore(ObservationStore):
    """
    Observation store over in-memory DataFrames keyed by table name.

    Unknown tables and missing columns raise StoreError, the same way the
    database would reject the query.

    Example:
        >>> store = DataFrameObservationStore({"Sewing": sewing_df})
        >>> observations = store.fetch_range(SEWING, start, end)
    """

    def __init__(self, frames: Mapping[str, pd.DataFrame], calendar: LocalCalendar = SITE_CALENDAR):
        self.frames = dict(frames)
        self.calendar = calendar

    def _rows_in_range(
        self,
        table: str,
        columns: Tuple[str, ...],
        timestamp_column: str,
        as_date: bool,
        start: Bound,
        end: Bound
    ) -> List[Dict[str, Any]]:
        if end <= start:
            raise ValueError(f"Range end {end} must be after start {start}")

        frame = self.frames.get(table)
        if frame is None:
            raise StoreError(f"Unknown table: {table}")

        missing = [column for column in columns if column not in frame.columns]
        if missing:
            raise StoreError(f"Table {table} is missing columns {missing}")

        rows = []
        for row in frame.to_dict(orient="records"):
            try:
                instant = _coerce_instant(row.get(timestamp_column), as_date, self.calendar)
            except ValueError as e:
                raise StoreError(f"Unreadable {timestamp_column} in {table}: {e}") from e
            if instant is not None and start <= instant < end:
                rows.append(row)

        logger.info(f"Selected {len(rows)} of {len(frame)} {table} rows for {start} to {end}")
        return rows

    def fetch_range(self, kind: RecordKind, start: Bound, end: Bound) -> List[Observation]:
        rows = self._rows_in_range(
            kind.table, kind.source_columns, kind.timestamp_column,
            kind.timestamp_is_date, start, end
        )
        return observations_from_rows(kind, rows, self.calendar)

    def fetch_ratio_records(self, formula: RatioFormula, start: Bound, end: Bound) -> List[RatioDayRecord]:
        rows = self._rows_in_range(
            formula.table, formula.source_columns, formula.timestamp_column,
            formula.timestamp_is_date, start, end
        )
        return ratio_records_from_rows(formula, rows, self.calendar)
