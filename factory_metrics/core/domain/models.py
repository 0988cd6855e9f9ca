"""
Domain Models

Raw inputs (Observation, RatioDayRecord) and the derived value rows produced
by the rollup and ratio engines. Every model is frozen; engines allocate fresh
rows per call and never mutate their inputs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Union

from factory_metrics.core.calculations.weighting import Number

Instant = Union[datetime, date]

UNSPECIFIED = "(Unspecified)"
UNKNOWN_FABRIC = "(Unknown Fabric)"


def normalize_label(value: Optional[str], missing: str = UNSPECIFIED) -> str:
    """Blank or missing labels bucket under `missing` ('(Unspecified)' unless the kind says otherwise)."""
    text = "" if value is None else str(value).strip()
    return text or missing


# ============================================================
# RAW INPUTS
# ============================================================

@dataclass(frozen=True)
class Observation:
    """
    One raw fact recorded against an instant.

    Field values stay None when not recorded; they are only read as zero
    while summing.
    """
    instant: Instant
    category: str
    fields: Mapping[str, Optional[Number]] = field(default_factory=dict)
    subcategory: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))


@dataclass(frozen=True)
class RatioDayRecord:
    """One day's staffing, minutes and targets for the ratio formulas."""
    instant: Instant
    normal_workers: Optional[Number] = None
    normal_minutes: Optional[Number] = None
    ot_workers: Optional[Number] = None
    ot_minutes: Optional[Number] = None
    targets: Mapping[str, Optional[Number]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'targets', MappingProxyType(dict(self.targets)))


# ============================================================
# LEVEL 1: DAILY ROLLUP ROWS
# ============================================================

@dataclass(frozen=True)
class DailySubcategoryCategoryTotal:
    day: str
    subcategory: str
    category: str
    total: Decimal


@dataclass(frozen=True)
class DailyCategoryTotal:
    day: str
    category: str
    total: Decimal


@dataclass(frozen=True)
class DailyTotal:
    day: str
    total: Decimal


# ============================================================
# LEVEL 2: MONTHLY ROLLUP ROWS
# ============================================================

@dataclass(frozen=True)
class MonthlySubcategoryCategoryTotal:
    month: str
    subcategory: str
    category: str
    total: Decimal


@dataclass(frozen=True)
class MonthlyCategoryTotal:
    month: str
    category: str
    total: Decimal


@dataclass(frozen=True)
class MonthlyTotal:
    month: str
    total: Decimal


# ============================================================
# LEVEL 3: RANGE ROLLUP ROWS
# ============================================================

@dataclass(frozen=True)
class RangeSubcategoryCategoryTotal:
    """Total of one (category, subcategory) over the whole requested range."""
    category: str
    subcategory: str
    total: Decimal


@dataclass(frozen=True)
class RangeCategoryTotal:
    category: str
    total: Decimal


# ============================================================
# RATIO RESULTS
# ============================================================

@dataclass(frozen=True)
class DailyRatio:
    """
    Rated output and operating times for one local day.

    inputs echoes the source columns (workers, minutes, targets) summed over
    the day's records.
    """
    day: str
    rated_output: Decimal
    operating_time_minutes: Decimal
    rated_operating_time_minutes: Decimal
    record_count: int = 1
    inputs: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'inputs', MappingProxyType(dict(self.inputs)))


@dataclass(frozen=True)
class MonthlyRatio:
    """Exact sum of the DailyRatio rows of one month."""
    month: str
    rated_output: Decimal
    operating_time_minutes: Decimal
    rated_operating_time_minutes: Decimal
    day_count: int = 0
