"""
test_weighting.py: WeightingModel and exact decimal conversion.
"""

from decimal import Decimal

import numpy as np
import pytest

from factory_metrics.core.calculations.weighting import WeightingModel, decimal_or_zero, to_decimal
from factory_metrics.core.domain.catalog import SEWING_MULTIPLIERS


class TestWeightingModel:

    def test_known_category(self):
        model = WeightingModel(SEWING_MULTIPLIERS)
        assert model.weight_of("SP2") == Decimal("2")
        assert model.weight_of("SS") == Decimal("0.2")

    def test_unknown_category_weighs_exactly_one(self):
        model = WeightingModel(SEWING_MULTIPLIERS)
        assert model.weight_of("NEW-OP") == Decimal(1)
        assert not model.is_known("NEW-OP")

    def test_empty_model(self):
        assert WeightingModel().weight_of("anything") == Decimal(1)

    def test_weights_are_read_only(self):
        model = WeightingModel({"A": 2})
        with pytest.raises(TypeError):
            model.weights["A"] = Decimal(3)

    def test_negative_weight_is_rejected(self):
        with pytest.raises(ValueError):
            WeightingModel({"A": -1})

    def test_float_weight_is_exact(self):
        assert WeightingModel({"A": 0.2}).weight_of("A") == Decimal("0.2")


class TestToDecimal:

    @pytest.mark.parametrize("missing", [None, float("nan"), "", "   ", Decimal("NaN"), True])
    def test_missing_values(self, missing):
        assert to_decimal(missing) is None

    def test_numeric_string(self):
        assert to_decimal(" 12.5 ") == Decimal("12.5")

    def test_numpy_scalar(self):
        assert to_decimal(np.int64(7)) == Decimal(7)

    def test_non_numeric_string(self):
        with pytest.raises(ValueError):
            to_decimal("twelve")

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            to_decimal(object())

    def test_decimal_or_zero(self):
        assert decimal_or_zero(None) == Decimal(0)
        assert decimal_or_zero(3) == Decimal(3)
