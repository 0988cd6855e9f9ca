"""
Report Structures

Nested, immutable report structures consumed by dashboards and exporters.
Each report keeps the engine's exact Decimal values; to_dict() produces the
rounded presentation form.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from factory_metrics.core.domain.models import (
    DailyCategoryTotal,
    DailyRatio,
    DailyTotal,
    MonthlyCategoryTotal,
    MonthlyRatio,
    MonthlySubcategoryCategoryTotal,
    MonthlyTotal,
    RangeCategoryTotal,
    RangeSubcategoryCategoryTotal,
)
from factory_metrics.utils.formatting import DEFAULT_PLACES, format_decimal, nested_to_dict, row_to_dict


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class RollupReport:
    """All rollup levels of one record kind for one date range."""
    kind: str
    start: str
    end: str
    daily_by_category: Tuple[DailyCategoryTotal, ...] = ()
    daily_grand: Tuple[DailyTotal, ...] = ()
    weighted_daily_by_subcategory: Mapping[str, Mapping[str, Decimal]] = field(default_factory=dict)
    monthly_by_subcategory_and_category: Tuple[MonthlySubcategoryCategoryTotal, ...] = ()
    monthly_by_category: Tuple[MonthlyCategoryTotal, ...] = ()
    monthly_grand: Tuple[MonthlyTotal, ...] = ()
    range_by_subcategory_and_category: Tuple[RangeSubcategoryCategoryTotal, ...] = ()
    range_by_category: Tuple[RangeCategoryTotal, ...] = ()
    range_grand: Decimal = Decimal(0)
    observation_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'weighted_daily_by_subcategory', _freeze({
            day: _freeze(totals) for day, totals in self.weighted_daily_by_subcategory.items()
        }))

    @property
    def has_data(self) -> bool:
        """False when no observation fell in the range ("no data", not an error)."""
        return self.observation_count > 0

    def to_dict(self, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'range': {'start': self.start, 'end': self.end},
            'has_data': self.has_data,
            'daily': {
                'by_category': [row_to_dict(r, places) for r in self.daily_by_category],
                'grand': [row_to_dict(r, places) for r in self.daily_grand],
                'weighted_by_subcategory': nested_to_dict(self.weighted_daily_by_subcategory, places),
            },
            'monthly': {
                'by_subcategory_and_category': [
                    row_to_dict(r, places) for r in self.monthly_by_subcategory_and_category
                ],
                'by_category': [row_to_dict(r, places) for r in self.monthly_by_category],
                'grand': [row_to_dict(r, places) for r in self.monthly_grand],
            },
            'totals': {
                'by_category_and_subcategory': [
                    row_to_dict(r, places) for r in self.range_by_subcategory_and_category
                ],
                'by_category': [row_to_dict(r, places) for r in self.range_by_category],
                'grand': format_decimal(self.range_grand, places),
            },
        }


@dataclass(frozen=True)
class MeasureReport:
    """One RollupReport per measure field of a record kind (e.g. cutting pcs / m² / mL)."""
    kind: str
    start: str
    end: str
    measures: Mapping[str, RollupReport] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'measures', _freeze(self.measures))

    @property
    def has_data(self) -> bool:
        return any(report.has_data for report in self.measures.values())

    def to_dict(self, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'range': {'start': self.start, 'end': self.end},
            'has_data': self.has_data,
            'measures': {
                name: report.to_dict(places) for name, report in self.measures.items()
            },
        }


@dataclass(frozen=True)
class RatioMetrics:
    """
    Rated vs actual figures for one period (day or month) with derived percentages.

    efficiency_percent is None when no actual-output source is configured.
    """
    period: str
    rated_output: Decimal
    operating_time_minutes: Decimal
    rated_operating_time_minutes: Decimal
    utilization_percent: Decimal
    actual_output: Optional[Decimal] = None
    efficiency_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class RatioReport:
    """
    Efficiency/utilization report of one ratio-formula variant.

    daily/monthly hold the rated side only, for days with a staffing record.
    daily_metrics also covers days that only have actual output (rated 0);
    monthly_metrics are the sums of the daily_metrics of each month.
    """
    formula: str
    start: str
    end: str
    daily: Tuple[DailyRatio, ...] = ()
    monthly: Tuple[MonthlyRatio, ...] = ()
    daily_metrics: Tuple[RatioMetrics, ...] = ()
    monthly_metrics: Tuple[RatioMetrics, ...] = ()
    actual_output_kind: Optional[str] = None
    record_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.record_count > 0

    def to_dict(self, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
        return {
            'formula': self.formula,
            'range': {'start': self.start, 'end': self.end},
            'has_data': self.has_data,
            'actual_output_kind': self.actual_output_kind,
            'daily': [row_to_dict(r, places) for r in self.daily],
            'monthly': [row_to_dict(r, places) for r in self.monthly],
            'daily_metrics': [row_to_dict(r, places) for r in self.daily_metrics],
            'monthly_metrics': [row_to_dict(r, places) for r in self.monthly_metrics],
        }


@dataclass(frozen=True)
class DashboardReport:
    """Every sub-report of one dashboard view, computed over the same range."""
    start: str
    end: str
    rollups: Mapping[str, RollupReport] = field(default_factory=dict)
    measures: Mapping[str, MeasureReport] = field(default_factory=dict)
    ratios: Mapping[str, RatioReport] = field(default_factory=dict)

    def __post_init__(self):
        for name in ('rollups', 'measures', 'ratios'):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    @property
    def has_data(self) -> bool:
        reports = list(self.rollups.values()) + list(self.measures.values()) + list(self.ratios.values())
        return any(report.has_data for report in reports)

    def to_dict(self, places: Optional[int] = DEFAULT_PLACES) -> Dict[str, Any]:
        return {
            'range': {'start': self.start, 'end': self.end},
            'has_data': self.has_data,
            'rollups': {name: r.to_dict(places) for name, r in self.rollups.items()},
            'measures': {name: r.to_dict(places) for name, r in self.measures.items()},
            'ratios': {name: r.to_dict(places) for name, r in self.ratios.items()},
        }
