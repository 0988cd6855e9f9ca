"""
Report Assembler
Fetches raw observations for a local date range and assembles rollup,
measure, ratio and dashboard reports from the engines.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from factory_metrics.core.analysis.reports import (
    DashboardReport,
    MeasureReport,
    RatioMetrics,
    RatioReport,
    RollupReport,
)
from factory_metrics.core.calculations.ratios import RatioFormulaEngine, safe_percentage
from factory_metrics.core.calculations.rollup import RollupEngine
from factory_metrics.core.calculations.weighting import ZERO
from factory_metrics.core.calendar.filters import filter_by_day_range, validate_date_range
from factory_metrics.core.calendar.models import DayLike
from factory_metrics.core.db.fetchers import ObservationStore
from factory_metrics.core.domain.catalog import MEASURES, RATIO_FORMULAS, RECORD_KINDS
from factory_metrics.core.domain.models import DailyRatio, Observation
from factory_metrics.core.domain.settings import EngineSettings, RatioFormula, RecordKind

logger = logging.getLogger(__name__)


class ReportAssembler:
    """
    Produces the nested report structures for one store and one set of settings.

    Example:
        >>> assembler = ReportAssembler(PostgresObservationStore(), EngineSettings())
        >>> report = assembler.rollup_report("sewing", "2025-03-01", "2025-03-31")
        >>> report.has_data
        True
    """

    def __init__(
        self,
        store: ObservationStore,
        settings: EngineSettings,
        kinds: Mapping[str, RecordKind] = RECORD_KINDS,
        formulas: Mapping[str, RatioFormula] = RATIO_FORMULAS,
        measures: Mapping[str, Sequence[str]] = MEASURES
    ):
        self.store = store
        self.settings = settings
        self.calendar = settings.calendar()
        self.kinds = dict(kinds)
        self.formulas = dict(formulas)
        self.measures = dict(measures)

    # ============================================================
    # LOOKUPS & BOUNDS
    # ============================================================

    def _kind(self, kind: Union[str, RecordKind]) -> RecordKind:
        if isinstance(kind, RecordKind):
            return kind
        try:
            return self.kinds[kind]
        except KeyError:
            raise ValueError(
                f"Unknown record kind: '{kind}'. Valid options: {list(self.kinds)}"
            ) from None

    def _formula(self, formula: Union[str, RatioFormula]) -> RatioFormula:
        if isinstance(formula, RatioFormula):
            return formula
        try:
            return self.formulas[formula]
        except KeyError:
            raise ValueError(
                f"Unknown ratio formula: '{formula}'. Valid options: {list(self.formulas)}"
            ) from None

    def _validate(self, start: DayLike, end: DayLike) -> Tuple[date, date]:
        return validate_date_range(self.calendar, start, end, self.settings.max_range_days)

    def _bounds(self, timestamp_is_date: bool, start: date, end: date):
        """Half-open store bounds: local dates for date columns, UTC instants otherwise."""
        if timestamp_is_date:
            return start, end + timedelta(days=1)
        return self.calendar.range_bounds_utc(start, end)

    def _fetch_observations(self, kind: RecordKind, start: date, end: date) -> List[Observation]:
        lower, upper = self._bounds(kind.timestamp_is_date, start, end)
        observations = self.store.fetch_range(kind, lower, upper)
        logger.info(f"{kind.name}: {len(observations)} observations for {start} to {end}")
        return observations

    # ============================================================
    # ROLLUP REPORTS
    # ============================================================

    def _rollup_from(
        self,
        kind: RecordKind,
        observations: List[Observation],
        start: date,
        end: date
    ) -> RollupReport:
        engine = RollupEngine(kind, self.calendar)
        in_range = filter_by_day_range(observations, self.calendar, start, end)

        return RollupReport(
            kind=kind.name,
            start=start.isoformat(),
            end=end.isoformat(),
            daily_by_category=tuple(engine.daily_by_category(observations, start, end)),
            daily_grand=tuple(engine.daily_grand_total(observations, start, end)),
            weighted_daily_by_subcategory=engine.weighted_daily_by_subcategory(observations, start, end),
            monthly_by_subcategory_and_category=tuple(
                engine.monthly_by_subcategory_and_category(observations, start, end)
            ),
            monthly_by_category=tuple(engine.monthly_by_category(observations, start, end)),
            monthly_grand=tuple(engine.monthly_grand_total(observations, start, end)),
            range_by_subcategory_and_category=tuple(
                engine.range_by_subcategory_and_category(observations, start, end)
            ),
            range_by_category=tuple(engine.range_by_category(observations, start, end)),
            range_grand=engine.range_grand_total(observations, start, end),
            observation_count=len(in_range),
        )

    def rollup_report(self, kind: Union[str, RecordKind], start: DayLike, end: DayLike) -> RollupReport:
        """
        Every rollup level of one record kind for the inclusive local range.

        Raises:
            InvalidDateKey, InvalidDateRange, RangeTooLarge: On a bad range
            StoreError: If the store fails
        """
        record_kind = self._kind(kind)
        start_day, end_day = self._validate(start, end)
        observations = self._fetch_observations(record_kind, start_day, end_day)
        return self._rollup_from(record_kind, observations, start_day, end_day)

    def measure_report(
        self,
        kind: Union[str, RecordKind],
        start: DayLike,
        end: DayLike,
        measures: Optional[Sequence[str]] = None
    ) -> MeasureReport:
        """
        One rollup report per measure field, all computed from a single fetch.

        Args:
            kind: Record kind (e.g. 'cutting')
            start: First local day (inclusive)
            end: Last local day (inclusive)
            measures: Measure fields; defaults to the kind's configured measures
        """
        record_kind = self._kind(kind)
        names = tuple(measures or self.measures.get(record_kind.name) or record_kind.fields)
        start_day, end_day = self._validate(start, end)
        observations = self._fetch_observations(record_kind, start_day, end_day)

        return MeasureReport(
            kind=record_kind.name,
            start=start_day.isoformat(),
            end=end_day.isoformat(),
            measures={
                name: self._rollup_from(record_kind.with_fields(name), observations, start_day, end_day)
                for name in names
            },
        )

    # ============================================================
    # RATIO REPORTS
    # ============================================================

    def _actual_output(self, formula: RatioFormula, start: date, end: date) -> Optional[Dict[str, Decimal]]:
        """Raw daily grand totals of the formula's actual-output kind."""
        if not formula.actual_output_kind:
            return None

        kind = self._kind(formula.actual_output_kind)
        observations = self._fetch_observations(kind, start, end)
        engine = RollupEngine(kind, self.calendar)
        return {row.day: row.total for row in engine.daily_grand_total(observations, start, end)}

    @staticmethod
    def _metrics(
        period: str,
        rated_output: Decimal,
        operating_time: Decimal,
        rated_operating_time: Decimal,
        actual_output: Optional[Decimal]
    ) -> RatioMetrics:
        efficiency = None
        if actual_output is not None:
            efficiency = safe_percentage(actual_output, rated_output)

        return RatioMetrics(
            period=period,
            rated_output=rated_output,
            operating_time_minutes=operating_time,
            rated_operating_time_minutes=rated_operating_time,
            utilization_percent=safe_percentage(operating_time, rated_operating_time),
            actual_output=actual_output,
            efficiency_percent=efficiency,
        )

    def _daily_metrics(
        self,
        formula: RatioFormula,
        daily: List[DailyRatio],
        actual: Optional[Dict[str, Decimal]]
    ) -> List[RatioMetrics]:
        """
        One metrics row per day with a staffing record or with actual output.

        A day with output but no staffing record has rated figures of 0, so its
        efficiency is 0 rather than missing from the month.
        """
        rows = {row.day: row for row in daily}
        unstaffed = sorted(set(actual or {}) - set(rows))
        if unstaffed:
            logger.warning(f"{formula.name}: actual output without staffing records on {unstaffed}")

        metrics = []
        for day in sorted(set(rows) | set(actual or {})):
            row = rows.get(day)
            actual_output = None if actual is None else actual.get(day, ZERO)
            if row is None:
                metrics.append(self._metrics(day, ZERO, ZERO, ZERO, actual_output))
            else:
                metrics.append(self._metrics(
                    day,
                    row.rated_output,
                    row.operating_time_minutes,
                    row.rated_operating_time_minutes,
                    actual_output,
                ))
        return metrics

    def _monthly_metrics(self, daily_metrics: List[RatioMetrics]) -> List[RatioMetrics]:
        """Monthly metrics summed from the daily metrics; percentages recomputed from the sums."""
        sums: Dict[str, List[Optional[Decimal]]] = {}
        for row in daily_metrics:
            current = sums.setdefault(self.calendar.month_of(row.period), [ZERO, ZERO, ZERO, None])
            current[0] += row.rated_output
            current[1] += row.operating_time_minutes
            current[2] += row.rated_operating_time_minutes
            if row.actual_output is not None:
                current[3] = (current[3] or ZERO) + row.actual_output

        return [self._metrics(month, *values) for month, values in sorted(sums.items())]

    def ratio_report(self, formula: Union[str, RatioFormula], start: DayLike, end: DayLike) -> RatioReport:
        """
        Daily and monthly ratio results with utilization and efficiency percentages.

        Utilization = operating time / rated operating time; efficiency = actual
        output / rated output (only when the formula names an actual-output kind).
        """
        ratio_formula = self._formula(formula)
        start_day, end_day = self._validate(start, end)

        lower, upper = self._bounds(ratio_formula.timestamp_is_date, start_day, end_day)
        records = self.store.fetch_ratio_records(ratio_formula, lower, upper)

        engine = RatioFormulaEngine(
            ratio_formula,
            self.calendar,
            self.settings.rated_minutes_per_worker_day,
            self.settings.ot_minutes_per_normal_day,
        )
        daily = engine.daily(records, start_day, end_day)
        monthly = engine.monthly_from_daily(daily)
        actual_daily = self._actual_output(ratio_formula, start_day, end_day)
        daily_metrics = self._daily_metrics(ratio_formula, daily, actual_daily)

        logger.info(
            f"{ratio_formula.name}: {len(records)} records -> {len(daily)} days, {len(monthly)} months"
        )

        return RatioReport(
            formula=ratio_formula.name,
            start=start_day.isoformat(),
            end=end_day.isoformat(),
            daily=tuple(daily),
            monthly=tuple(monthly),
            daily_metrics=tuple(daily_metrics),
            monthly_metrics=tuple(self._monthly_metrics(daily_metrics)),
            actual_output_kind=ratio_formula.actual_output_kind,
            record_count=sum(row.record_count for row in daily),
        )

    # ============================================================
    # DASHBOARD
    # ============================================================

    def dashboard(
        self,
        start: DayLike,
        end: DayLike,
        kinds: Optional[Iterable[str]] = None,
        formulas: Optional[Iterable[str]] = None,
        max_workers: int = 4
    ) -> DashboardReport:
        """
        Compute several sub-reports concurrently over the same range.

        Kinds with configured measures produce a MeasureReport, the others a
        RollupReport. Any sub-report failure propagates; no partial dashboard
        is returned.

        Args:
            start: First local day (inclusive)
            end: Last local day (inclusive)
            kinds: Record kind names (default: all)
            formulas: Ratio formula names (default: all)
            max_workers: Thread pool size
        """
        start_day, end_day = self._validate(start, end)
        kind_names = list(self.kinds) if kinds is None else list(kinds)
        formula_names = list(self.formulas) if formulas is None else list(formulas)

        # Resolve names up front so a typo fails before any fetch
        for name in kind_names:
            self._kind(name)
        for name in formula_names:
            self._formula(name)

        logger.info(
            f"Building dashboard for {start_day} to {end_day}: "
            f"kinds={kind_names}, formulas={formula_names}"
        )

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            rollup_futures = {}
            measure_futures = {}
            for name in kind_names:
                if name in self.measures:
                    measure_futures[name] = executor.submit(self.measure_report, name, start_day, end_day)
                else:
                    rollup_futures[name] = executor.submit(self.rollup_report, name, start_day, end_day)
            ratio_futures = {
                name: executor.submit(self.ratio_report, name, start_day, end_day)
                for name in formula_names
            }

            rollups = {name: future.result() for name, future in rollup_futures.items()}
            measures = {name: future.result() for name, future in measure_futures.items()}
            ratios = {name: future.result() for name, future in ratio_futures.items()}

        return DashboardReport(
            start=start_day.isoformat(),
            end=end_day.isoformat(),
            rollups=rollups,
            measures=measures,
            ratios=ratios,
        )
