"""
Engine Configuration Structures

Immutable configuration handed to each engine component at construction:
- RecordKind: one rollup domain (declared fields, enumerations, weighting, source table)
- RatioFormula: one ratio-formula variant (target weights, source columns)
- EngineSettings: site calendar and the fixed formula constants
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from factory_metrics.core.calculations.weighting import ONE, Number, WeightingModel, to_decimal
from factory_metrics.core.calendar.models import LocalCalendar
from factory_metrics.core.domain.models import UNSPECIFIED


def _freeze(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class RecordKind:
    """
    Configuration of one rollup domain (e.g. sewing, inspection, packing, cutting).

    Subcategories come from one of two places:
    - fields_are_subcategories=True: each declared field is a machine/line column
      and its value lands in the bucket named after the column
    - otherwise: the observation's own subcategory (e.g. a panel id)

    Attributes:
        name: Record kind identifier
        table: Source table name
        fields: Declared numeric fields summed into totals
        categories: Category enumeration (presentation order)
        subcategories: Subcategory enumeration (presentation order)
        weights: category -> multiplier for weighted rollups
        fields_are_subcategories: Treat each declared field as a subcategory
        timestamp_column: Column holding the observation instant
        timestamp_is_date: True when the timestamp column is a plain date
        category_column: Column holding the category label
        subcategory_column: Column holding the subcategory label
        pivot_columns: column -> (category, field) for rows that encode the category
                       in the column name (one row yields one observation per category)
        product_fields: field -> (factor column, factor column) computed per row
        missing_subcategory_label: Bucket label for blank or missing subcategories
    """
    name: str
    table: str
    fields: Tuple[str, ...]
    categories: Tuple[str, ...] = ()
    subcategories: Tuple[str, ...] = ()
    weights: Mapping[str, Number] = field(default_factory=dict)
    fields_are_subcategories: bool = False
    timestamp_column: str = "operationDate"
    timestamp_is_date: bool = False
    category_column: Optional[str] = "operationType"
    subcategory_column: Optional[str] = None
    pivot_columns: Mapping[str, Tuple[str, str]] = field(default_factory=dict)
    product_fields: Mapping[str, Tuple[str, str]] = field(default_factory=dict)
    missing_subcategory_label: str = UNSPECIFIED

    def __post_init__(self):
        """Normalize collections and validate the configuration"""
        object.__setattr__(self, 'fields', tuple(self.fields))
        object.__setattr__(self, 'categories', tuple(self.categories))
        object.__setattr__(self, 'weights', _freeze(self.weights))
        object.__setattr__(self, 'pivot_columns', _freeze(self.pivot_columns))
        object.__setattr__(self, 'product_fields', _freeze(self.product_fields))

        if not self.fields:
            raise ValueError(f"Record kind '{self.name}' declares no numeric fields")

        if not self.pivot_columns and not self.category_column:
            raise ValueError(
                f"Record kind '{self.name}' needs either a category_column or pivot_columns"
            )

        subcategories = tuple(self.subcategories)
        if self.fields_are_subcategories and not subcategories:
            subcategories = self.fields
        object.__setattr__(self, 'subcategories', subcategories)

    @property
    def weighting(self) -> WeightingModel:
        return WeightingModel(self.weights)

    @property
    def source_columns(self) -> Tuple[str, ...]:
        """Columns to read from the source table, in a stable order."""
        columns = [self.timestamp_column]
        if self.pivot_columns:
            columns.extend(self.pivot_columns)
        else:
            columns.append(self.category_column)
            if self.subcategory_column:
                columns.append(self.subcategory_column)
            columns.extend(f for f in self.fields if f not in self.product_fields)
        for left, right in self.product_fields.values():
            columns.extend((left, right))
        # De-duplicate, keep first occurrence
        return tuple(dict.fromkeys(columns))

    def with_fields(self, *fields: str) -> "RecordKind":
        """Same record kind summing a different declared field subset (e.g. one measure)."""
        return replace(self, fields=tuple(fields))


@dataclass(frozen=True)
class RatioFormula:
    """
    Configuration of one ratio-formula variant.

    Attributes:
        name: Variant identifier (e.g. 'sewing', 'inspection100')
        table: Source table of the daily staffing records
        target_weights: target name -> weight; weights sum to exactly 1
        target_columns: target name -> source column
        actual_output_kind: Record kind whose raw daily grand total is reported
                            as actual output next to the rated output
    """
    name: str
    table: str
    target_weights: Mapping[str, Number]
    target_columns: Mapping[str, str] = field(default_factory=dict)
    timestamp_column: str = "operationDate"
    timestamp_is_date: bool = False
    normal_workers_column: str = "m2_workers_normal"
    normal_minutes_column: str = "m3_operating_mins_normal"
    ot_workers_column: str = "m4_workers_ot"
    ot_minutes_column: str = "m5_operating_mins_ot"
    actual_output_kind: Optional[str] = None

    def __post_init__(self):
        """Validate target weights"""
        weights: Dict[str, Decimal] = {}
        for target, weight in self.target_weights.items():
            value = to_decimal(weight)
            if value is None or not 0 <= value <= 1:
                raise ValueError(
                    f"Target weight for '{target}' must be between 0 and 1, got {weight!r}"
                )
            weights[target] = value

        if not weights:
            raise ValueError(f"Ratio formula '{self.name}' declares no targets")

        total = sum(weights.values())
        if total != ONE:
            raise ValueError(
                f"Target weights of ratio formula '{self.name}' must sum to 1, got {total}"
            )

        columns = dict(self.target_columns)
        unknown = [t for t in columns if t not in weights]
        if unknown:
            raise ValueError(f"Target columns given for undeclared targets: {unknown}")
        for target in weights:
            columns.setdefault(target, target)

        object.__setattr__(self, 'target_weights', MappingProxyType(weights))
        object.__setattr__(self, 'target_columns', MappingProxyType(columns))

    @property
    def source_columns(self) -> Tuple[str, ...]:
        columns = [
            self.timestamp_column,
            self.normal_workers_column,
            self.normal_minutes_column,
            self.ot_workers_column,
            self.ot_minutes_column,
        ]
        columns.extend(self.target_columns.values())
        return tuple(dict.fromkeys(columns))


@dataclass(frozen=True)
class EngineSettings:
    """
    Static domain configuration loaded once at process start.

    Attributes:
        timezone_name: Site timezone name
        utc_offset_minutes: Fixed site offset from UTC
        rated_minutes_per_worker_day: Theoretical normal-shift minutes per worker per day
        ot_minutes_per_normal_day: OT minutes equivalent to one normal-shift day of output
        max_range_days: Largest inclusive range a single request may span
    """
    timezone_name: str = "Asia/Kuala_Lumpur"
    utc_offset_minutes: int = 480
    rated_minutes_per_worker_day: Number = Decimal(720)
    ot_minutes_per_normal_day: Number = Decimal(720)
    max_range_days: int = 366

    def __post_init__(self):
        """Convert constants to Decimal and reject non-positive divisors"""
        for name in ('rated_minutes_per_worker_day', 'ot_minutes_per_normal_day'):
            value = to_decimal(getattr(self, name))
            if value is None or value <= 0:
                raise ValueError(f"{name} must be a positive number, got {getattr(self, name)!r}")
            object.__setattr__(self, name, value)

        if self.max_range_days < 1:
            raise ValueError(f"max_range_days must be at least 1, got {self.max_range_days}")

    def calendar(self) -> LocalCalendar:
        return LocalCalendar(self.timezone_name, self.utc_offset_minutes)

    @classmethod
    def from_app_config(cls, app_config: Mapping) -> "EngineSettings":
        """
        Build settings from the dictionary returned by utils.config.get_app_config().
        """
        return cls(
            timezone_name=app_config["timezone"],
            utc_offset_minutes=int(app_config["utc_offset_minutes"]),
            rated_minutes_per_worker_day=app_config["rated_minutes_per_worker_day"],
            ot_minutes_per_normal_day=app_config["ot_minutes_per_normal_day"],
            max_range_days=int(app_config["max_range_days"]),
        )
