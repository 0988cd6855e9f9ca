"""
Rollup Engine

Aggregates raw observations of one record kind into daily and monthly totals:
- Level 1 (daily): per subcategory & category, per category, grand total, weighted per subcategory
- Level 2 (monthly): per subcategory & category, per category, grand total
- Level 3 (range): per category & subcategory, per category, grand total

Every monthly rollup is the sum of the matching daily rollup over the days of
that month, and every range total is the sum of the monthly rollups; no
monthly or range figure is ever recomputed from raw observations.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from factory_metrics.core.calculations.weighting import ZERO, WeightingModel, decimal_or_zero
from factory_metrics.core.calendar.filters import filter_by_day_range
from factory_metrics.core.calendar.models import DayLike, LocalCalendar
from factory_metrics.core.domain.models import (
    DailyCategoryTotal,
    DailySubcategoryCategoryTotal,
    DailyTotal,
    MonthlyCategoryTotal,
    MonthlySubcategoryCategoryTotal,
    MonthlyTotal,
    Observation,
    RangeCategoryTotal,
    RangeSubcategoryCategoryTotal,
    normalize_label,
)
from factory_metrics.core.domain.settings import RecordKind

logger = logging.getLogger(__name__)


def _ranker(order: Tuple[str, ...]):
    """Sort key placing enumerated labels first (in order), unknown labels after, alphabetically."""
    positions = {label: index for index, label in enumerate(order)}

    def rank(label: str):
        if label in positions:
            return (0, positions[label], "")
        return (1, 0, label)

    return rank


class RollupEngine:
    """
    Parameterized rollup pipeline for one record kind.

    Example:
        >>> engine = RollupEngine(SEWING, LocalCalendar())
        >>> rows = engine.daily_by_category(observations, "2025-03-01", "2025-03-31")
        >>> rows[0]
        DailyCategoryTotal(day='2025-03-01', category='SP1', total=Decimal('42'))
    """

    def __init__(
        self,
        kind: RecordKind,
        calendar: LocalCalendar,
        weighting: Optional[WeightingModel] = None
    ):
        self.kind = kind
        self.calendar = calendar
        self.weighting = weighting or kind.weighting
        self._category_rank = _ranker(kind.categories)
        self._subcategory_rank = _ranker(kind.subcategories)

    # ============================================================
    # ROW CONTRIBUTIONS
    # ============================================================

    def row_total(self, observation: Observation) -> Decimal:
        """Raw sum of the declared fields of one observation (missing = 0)."""
        return sum(
            (decimal_or_zero(observation.fields.get(name)) for name in self.kind.fields),
            ZERO
        )

    def _contributions(self, observation: Observation) -> Iterator[Tuple[str, Decimal]]:
        """(subcategory, raw amount) pairs contributed by one observation."""
        if self.kind.fields_are_subcategories:
            for name in self.kind.fields:
                yield name, decimal_or_zero(observation.fields.get(name))
        else:
            yield (
                normalize_label(observation.subcategory, self.kind.missing_subcategory_label),
                self.row_total(observation),
            )

    def _in_range(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[Tuple[str, Observation]]:
        pairs = filter_by_day_range(observations, self.calendar, start, end)

        if self.kind.categories:
            known = set(self.kind.categories)
            unknown = {normalize_label(o.category) for _, o in pairs} - known
            if unknown:
                logger.warning(
                    f"{self.kind.name}: tolerating unrecognised categories {sorted(unknown)}"
                )
        return pairs

    # ============================================================
    # LEVEL 1: DAILY
    # ============================================================

    def daily_by_subcategory_and_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[DailySubcategoryCategoryTotal]:
        """
        Day buckets keyed by (day, category, subcategory): the finest rollup level.

        Every (day, category, subcategory) touched by an observation in range
        gets a bucket, even when its sum is zero.
        """
        buckets: Dict[Tuple[str, str, str], Decimal] = defaultdict(lambda: ZERO)

        for day, observation in self._in_range(observations, start, end):
            category = normalize_label(observation.category)
            for subcategory, amount in self._contributions(observation):
                buckets[(day, category, subcategory)] += amount

        ordered = sorted(
            buckets.items(),
            key=lambda item: (
                item[0][0],
                self._category_rank(item[0][1]),
                self._subcategory_rank(item[0][2]),
            )
        )
        return [
            DailySubcategoryCategoryTotal(day=day, subcategory=sub, category=cat, total=total)
            for (day, cat, sub), total in ordered
        ]

    def daily_by_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[DailyCategoryTotal]:
        """
        Raw daily totals per category (sum of declared fields, no weighting).
        """
        buckets: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for row in self.daily_by_subcategory_and_category(observations, start, end):
            buckets[(row.day, row.category)] += row.total

        ordered = sorted(
            buckets.items(),
            key=lambda item: (item[0][0], self._category_rank(item[0][1]))
        )
        return [
            DailyCategoryTotal(day=day, category=category, total=total)
            for (day, category), total in ordered
        ]

    def daily_grand_total(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[DailyTotal]:
        """Daily totals over all categories."""
        buckets: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for row in self.daily_by_category(observations, start, end):
            buckets[row.day] += row.total

        return [DailyTotal(day=day, total=total) for day, total in sorted(buckets.items())]

    def weighted_daily_by_subcategory(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> Dict[str, Dict[str, Decimal]]:
        """
        Weighted daily totals: day -> subcategory -> total.

        Each contribution is multiplied by the weight of its observation's
        category before it is added to the subcategory bucket.
        """
        buckets: Dict[str, Dict[str, Decimal]] = {}

        for day, observation in self._in_range(observations, start, end):
            weight = self.weighting.weight_of(normalize_label(observation.category))
            day_bucket = buckets.setdefault(day, {})
            for subcategory, amount in self._contributions(observation):
                day_bucket[subcategory] = day_bucket.get(subcategory, ZERO) + amount * weight

        return {
            day: {
                sub: buckets[day][sub]
                for sub in sorted(buckets[day], key=self._subcategory_rank)
            }
            for day in sorted(buckets)
        }

    # ============================================================
    # LEVEL 2: MONTHLY (always derived from the daily rollups)
    # ============================================================

    def monthly_by_subcategory_and_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[MonthlySubcategoryCategoryTotal]:
        """Monthly totals per (subcategory, category), summed from the day buckets."""
        buckets: Dict[Tuple[str, str, str], Decimal] = defaultdict(lambda: ZERO)
        for row in self.daily_by_subcategory_and_category(observations, start, end):
            month = self.calendar.month_of(row.day)
            buckets[(month, row.category, row.subcategory)] += row.total

        ordered = sorted(
            buckets.items(),
            key=lambda item: (
                item[0][0],
                self._category_rank(item[0][1]),
                self._subcategory_rank(item[0][2]),
            )
        )
        return [
            MonthlySubcategoryCategoryTotal(month=month, subcategory=sub, category=cat, total=total)
            for (month, cat, sub), total in ordered
        ]

    def monthly_by_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[MonthlyCategoryTotal]:
        """Monthly totals per category, summed from daily_by_category."""
        buckets: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for row in self.daily_by_category(observations, start, end):
            buckets[(self.calendar.month_of(row.day), row.category)] += row.total

        ordered = sorted(
            buckets.items(),
            key=lambda item: (item[0][0], self._category_rank(item[0][1]))
        )
        return [
            MonthlyCategoryTotal(month=month, category=category, total=total)
            for (month, category), total in ordered
        ]

    def monthly_grand_total(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[MonthlyTotal]:
        """Monthly totals over all categories, summed from daily_grand_total."""
        buckets: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for row in self.daily_grand_total(observations, start, end):
            buckets[self.calendar.month_of(row.day)] += row.total

        return [MonthlyTotal(month=month, total=total) for month, total in sorted(buckets.items())]

    # ============================================================
    # LEVEL 3: WHOLE RANGE (summed from the monthly rollups)
    # ============================================================

    def range_by_subcategory_and_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[RangeSubcategoryCategoryTotal]:
        """
        Range totals per category and subcategory (e.g. cutting panel type -> panel id).
        """
        buckets: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for row in self.monthly_by_subcategory_and_category(observations, start, end):
            buckets[(row.category, row.subcategory)] += row.total

        ordered = sorted(
            buckets.items(),
            key=lambda item: (self._category_rank(item[0][0]), self._subcategory_rank(item[0][1]))
        )
        return [
            RangeSubcategoryCategoryTotal(category=cat, subcategory=sub, total=total)
            for (cat, sub), total in ordered
        ]

    def range_by_category(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> List[RangeCategoryTotal]:
        buckets: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for row in self.monthly_by_category(observations, start, end):
            buckets[row.category] += row.total

        return [
            RangeCategoryTotal(category=category, total=buckets[category])
            for category in sorted(buckets, key=self._category_rank)
        ]

    def range_grand_total(
        self,
        observations: Iterable[Observation],
        start: DayLike,
        end: DayLike
    ) -> Decimal:
        """Grand total of the whole range (0 when nothing was recorded)."""
        return sum(
            (row.total for row in self.monthly_grand_total(observations, start, end)),
            ZERO
        )

    def __repr__(self) -> str:
        return f"RollupEngine(kind={self.kind.name}, fields={len(self.kind.fields)})"
