"""
Ratio Formula Engine

Computes the rated (theoretical) side of the efficiency and utilization metrics
from daily staffing records:

- Operating Time       = normal_workers × normal_minutes + ot_workers × ot_minutes
- Rated Operating Time = normal_workers × RATED_MINUTES_PER_WORKER_DAY
- Target (weighted)    = Σ target_i × weight_i
- Rated Output         = normal_workers × target + ot_workers × target × (ot_minutes / OT_MINUTES_PER_NORMAL_DAY)

Only configuration constants appear as divisors, so no record can cause a
division by zero. Missing inputs count as 0.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from factory_metrics.core.calculations.weighting import ZERO, Number, decimal_or_zero
from factory_metrics.core.calendar.filters import filter_by_day_range
from factory_metrics.core.calendar.models import DayLike, LocalCalendar
from factory_metrics.core.domain.models import DailyRatio, MonthlyRatio, RatioDayRecord
from factory_metrics.core.domain.settings import RatioFormula

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


def safe_percentage(actual: Number, rated: Number) -> Decimal:
    """
    100 × actual / rated, or 0 when there is no rated value.

    Example:
        >>> safe_percentage(90, 120)
        Decimal('75')
        >>> safe_percentage(5, 0)
        Decimal('0')
    """
    rated_value = decimal_or_zero(rated)
    if rated_value <= 0:
        return ZERO
    return HUNDRED * decimal_or_zero(actual) / rated_value


class RatioFormulaEngine:
    """
    Rated output and operating-time calculator for one formula variant.

    Example:
        >>> engine = RatioFormulaEngine(SEWING_EFFICIENCY, LocalCalendar())
        >>> daily = engine.daily(records, "2025-03-01", "2025-03-31")
        >>> monthly = engine.monthly(records, "2025-03-01", "2025-03-31")
    """

    def __init__(
        self,
        formula: RatioFormula,
        calendar: LocalCalendar,
        rated_minutes_per_worker_day: Number = Decimal(720),
        ot_minutes_per_normal_day: Number = Decimal(720)
    ):
        self.formula = formula
        self.calendar = calendar
        self.rated_minutes_per_worker_day = decimal_or_zero(rated_minutes_per_worker_day)
        self.ot_minutes_per_normal_day = decimal_or_zero(ot_minutes_per_normal_day)

        if self.rated_minutes_per_worker_day <= 0 or self.ot_minutes_per_normal_day <= 0:
            raise ValueError("Ratio formula constants must be positive")

    # ============================================================
    # PER-RECORD FORMULAS
    # ============================================================

    def target_weighted(self, record: RatioDayRecord) -> Decimal:
        """Weighted target per worker; collapses to the target itself for single-target variants."""
        return sum(
            (
                decimal_or_zero(record.targets.get(target)) * weight
                for target, weight in self.formula.target_weights.items()
            ),
            ZERO
        )

    def operating_time_minutes(self, record: RatioDayRecord) -> Decimal:
        normal = decimal_or_zero(record.normal_workers) * decimal_or_zero(record.normal_minutes)
        overtime = decimal_or_zero(record.ot_workers) * decimal_or_zero(record.ot_minutes)
        return normal + overtime

    def rated_operating_time_minutes(self, record: RatioDayRecord) -> Decimal:
        return decimal_or_zero(record.normal_workers) * self.rated_minutes_per_worker_day

    def rated_output(self, record: RatioDayRecord) -> Decimal:
        target = self.target_weighted(record)
        normal = decimal_or_zero(record.normal_workers) * target
        # Multiply before dividing so integral inputs stay exact as long as possible
        overtime = (
            decimal_or_zero(record.ot_workers) * target * decimal_or_zero(record.ot_minutes)
            / self.ot_minutes_per_normal_day
        )
        return normal + overtime

    def inputs(self, record: RatioDayRecord) -> Dict[str, Decimal]:
        """Source values of one record keyed by source column (missing = 0)."""
        values = {
            self.formula.target_columns[target]: decimal_or_zero(record.targets.get(target))
            for target in self.formula.target_weights
        }
        values[self.formula.normal_workers_column] = decimal_or_zero(record.normal_workers)
        values[self.formula.normal_minutes_column] = decimal_or_zero(record.normal_minutes)
        values[self.formula.ot_workers_column] = decimal_or_zero(record.ot_workers)
        values[self.formula.ot_minutes_column] = decimal_or_zero(record.ot_minutes)
        return values

    def evaluate(self, record: RatioDayRecord) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Evaluate all formulas for one record.

        Returns:
            Tuple of (rated_output, operating_time_minutes, rated_operating_time_minutes)
        """
        return (
            self.rated_output(record),
            self.operating_time_minutes(record),
            self.rated_operating_time_minutes(record),
        )

    # ============================================================
    # LEVEL 1: DAILY
    # ============================================================

    def daily(
        self,
        records: Iterable[RatioDayRecord],
        start: DayLike,
        end: DayLike
    ) -> List[DailyRatio]:
        """
        Per-day results for the inclusive range, ordered by day.

        Several records on the same local day are evaluated individually and
        their results summed. Their source inputs are summed as well.
        """
        sums: Dict[str, List[Decimal]] = {}
        counts: Dict[str, int] = defaultdict(int)
        inputs: Dict[str, Dict[str, Decimal]] = {}

        for day, record in filter_by_day_range(records, self.calendar, start, end):
            values = self.evaluate(record)
            current = sums.setdefault(day, [ZERO, ZERO, ZERO])
            for index, value in enumerate(values):
                current[index] += value
            day_inputs = inputs.setdefault(day, {})
            for column, value in self.inputs(record).items():
                day_inputs[column] = day_inputs.get(column, ZERO) + value
            counts[day] += 1

        duplicated = [day for day, count in counts.items() if count > 1]
        if duplicated:
            logger.info(f"{self.formula.name}: summed multiple records on days {sorted(duplicated)}")

        return [
            DailyRatio(
                day=day,
                rated_output=values[0],
                operating_time_minutes=values[1],
                rated_operating_time_minutes=values[2],
                record_count=counts[day],
                inputs=inputs[day],
            )
            for day, values in sorted(sums.items())
        ]

    # ============================================================
    # LEVEL 2: MONTHLY
    # ============================================================

    def monthly(
        self,
        records: Iterable[RatioDayRecord],
        start: DayLike,
        end: DayLike
    ) -> List[MonthlyRatio]:
        """Per-month results, each the exact sum of that month's daily results."""
        return self.monthly_from_daily(self.daily(records, start, end))

    def monthly_from_daily(self, daily: Iterable[DailyRatio]) -> List[MonthlyRatio]:
        sums: Dict[str, List[Decimal]] = {}
        days: Dict[str, int] = defaultdict(int)

        for row in daily:
            month = self.calendar.month_of(row.day)
            current = sums.setdefault(month, [ZERO, ZERO, ZERO])
            current[0] += row.rated_output
            current[1] += row.operating_time_minutes
            current[2] += row.rated_operating_time_minutes
            days[month] += 1

        return [
            MonthlyRatio(
                month=month,
                rated_output=values[0],
                operating_time_minutes=values[1],
                rated_operating_time_minutes=values[2],
                day_count=days[month],
            )
            for month, values in sorted(sums.items())
        ]

    def __repr__(self) -> str:
        return f"RatioFormulaEngine(formula={self.formula.name}, targets={list(self.formula.target_weights)})"
