"""
Category Weighting and Exact Numeric Helpers

Weighting multipliers put heterogeneous operation types on a common scale
(e.g. one SP2 sewing operation counts double, one SS operation a fifth).
All arithmetic uses decimal.Decimal so a year of daily sums accumulates no
floating-point drift.
"""

from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Mapping, Optional, Union

Number = Union[int, float, Decimal, str]

ZERO = Decimal(0)
ONE = Decimal(1)


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    """
    Convert a raw field value to Decimal, keeping "not recorded" as None.

    Args:
        value: int, float, Decimal, numeric string, or None

    Returns:
        Decimal value, or None if the value is missing (None, NaN, blank string)

    Raises:
        ValueError: If the value is not numeric

    Example:
        >>> to_decimal(0.1)
        Decimal('0.1')
        >>> to_decimal(None) is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return None if value.is_nan() else value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value:  # NaN from pandas
            return None
        # Go through str() so 0.1 becomes Decimal('0.1'), not its binary expansion
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"Non-numeric field value: {value!r}") from e
    # numpy scalars and other numeric types
    try:
        return to_decimal(value.item())
    except AttributeError:
        raise ValueError(f"Unsupported field value type: {type(value).__name__}") from None


def decimal_or_zero(value: Optional[Number]) -> Decimal:
    """Summation view of a field value: missing counts as 0."""
    converted = to_decimal(value)
    return ZERO if converted is None else converted


class WeightingModel:
    """
    Fixed mapping from category to an exact multiplier.

    Unknown categories weigh exactly 1 so new or unanticipated category
    strings never break ingestion.
    """

    def __init__(self, weights: Optional[Mapping[str, Number]] = None):
        """
        Args:
            weights: category -> multiplier (converted to Decimal)

        Raises:
            ValueError: If a multiplier is missing or negative
        """
        converted = {}
        for category, weight in (weights or {}).items():
            value = to_decimal(weight)
            if value is None or value < 0:
                raise ValueError(f"Invalid weight for category '{category}': {weight!r}")
            converted[category] = value
        self._weights = MappingProxyType(converted)

    @property
    def weights(self) -> Mapping[str, Decimal]:
        return self._weights

    def weight_of(self, category: str) -> Decimal:
        """Multiplier for a category; exactly 1 when the category is unknown."""
        return self._weights.get(category, ONE)

    def is_known(self, category: str) -> bool:
        return category in self._weights

    def __repr__(self) -> str:
        return f"WeightingModel({len(self._weights)} categories)"
