"""
test_rollup_engine.py: RollupEngine daily, monthly and range aggregation.

Covers:
  1. Missing declared fields count as zero (two observations, one day).
  2. Monthly totals are sums of daily totals, including zero days.
  3. Sum consistency across all levels, weighted linearity, idempotence.
  4. Enumeration ordering, unknown categories and unspecified labels.
  5. Machine columns as subcategories.
"""

from decimal import Decimal

import pytest

from factory_metrics.core.calculations.rollup import RollupEngine
from factory_metrics.core.domain.catalog import SEWING
from factory_metrics.core.domain.models import UNSPECIFIED
from factory_metrics.core.domain.settings import RecordKind


@pytest.fixture
def line_engine(line_kind, calendar):
    return RollupEngine(line_kind, calendar)


@pytest.fixture
def machine_engine(machine_kind, calendar):
    return RollupEngine(machine_kind, calendar)


class TestDailyTotals:

    def test_missing_field_counts_as_zero(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01", 9), "X", a=10, b=5),
            make_observation(at("2025-03-01", 14), "X", a=3),
        ]
        rows = line_engine.daily_by_category(observations, "2025-03-01", "2025-03-01")
        assert len(rows) == 1
        assert rows[0].day == "2025-03-01"
        assert rows[0].category == "X"
        assert rows[0].total == Decimal(18)

    def test_undeclared_fields_are_ignored(self, line_engine, make_observation, at):
        observations = [make_observation(at("2025-03-01"), "X", a=1, c=100)]
        assert line_engine.daily_grand_total(observations, "2025-03-01", "2025-03-01")[0].total == 1

    def test_observations_outside_range_are_dropped(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-02-28", 23, 59, 59), "X", a=1),
            make_observation(at("2025-03-01", 0, 0, 0), "X", a=2),
            make_observation(at("2025-03-02", 0, 0, 0), "X", a=4),
        ]
        rows = line_engine.daily_grand_total(observations, "2025-03-01", "2025-03-01")
        assert [(r.day, r.total) for r in rows] == [("2025-03-01", Decimal(2))]

    def test_empty_range_returns_empty_collections(self, line_engine):
        assert line_engine.daily_by_category([], "2025-03-01", "2025-03-31") == []
        assert line_engine.daily_grand_total([], "2025-03-01", "2025-03-31") == []
        assert line_engine.weighted_daily_by_subcategory([], "2025-03-01", "2025-03-31") == {}
        assert line_engine.monthly_grand_total([], "2025-03-01", "2025-03-31") == []

    def test_days_without_observations_have_no_bucket(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "X", a=1),
            make_observation(at("2025-03-03"), "X", a=1),
        ]
        days = [r.day for r in line_engine.daily_grand_total(observations, "2025-03-01", "2025-03-03")]
        assert days == ["2025-03-01", "2025-03-03"]

    def test_fractional_values_stay_exact(self, line_engine, make_observation, at):
        observations = [make_observation(at("2025-03-01"), "X", a=0.1) for _ in range(3)]
        total = line_engine.daily_grand_total(observations, "2025-03-01", "2025-03-01")[0].total
        assert total == Decimal("0.3")


class TestMonthlyTotals:

    def test_month_is_sum_of_days_with_a_zero_day(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "X", a=5),
            make_observation(at("2025-03-02"), "X", a=0),
            make_observation(at("2025-03-03"), "X", a=7),
        ]
        monthly = line_engine.monthly_by_category(observations, "2025-03-01", "2025-03-31")
        assert [(r.month, r.category, r.total) for r in monthly] == [("2025-03", "X", Decimal(12))]

    def test_month_boundary_uses_local_midnight(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-31", 23, 59, 59), "X", a=1),
            make_observation(at("2025-04-01", 0, 0, 0), "X", a=2),
        ]
        monthly = line_engine.monthly_grand_total(observations, "2025-03-01", "2025-04-30")
        assert [(r.month, r.total) for r in monthly] == [("2025-03", Decimal(1)), ("2025-04", Decimal(2))]

    def test_monthly_by_subcategory_and_category(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "X", "L1", a=1),
            make_observation(at("2025-03-02"), "X", "L1", a=2),
            make_observation(at("2025-03-02"), "X", "L2", b=4),
        ]
        rows = line_engine.monthly_by_subcategory_and_category(observations, "2025-03-01", "2025-03-31")
        assert [(r.subcategory, r.total) for r in rows] == [("L1", Decimal(3)), ("L2", Decimal(4))]


class TestConsistency:

    @pytest.fixture
    def observations(self, make_observation, at):
        return [
            make_observation(at("2025-03-01", 1), "X", "L1", a=10, b=5),
            make_observation(at("2025-03-01", 2), "Y", "L2", a=3),
            make_observation(at("2025-03-15", 23), "Y", "L1", b=7),
            make_observation(at("2025-04-02", 6), "Z", "L3", a=1, b=1),
            make_observation(at("2025-04-02", 7), "X", None, a=2),
        ]

    def test_levels_sum_consistently(self, line_engine, observations):
        start, end = "2025-03-01", "2025-04-30"
        finest = line_engine.daily_by_subcategory_and_category(observations, start, end)
        by_category = line_engine.daily_by_category(observations, start, end)
        grand = line_engine.daily_grand_total(observations, start, end)
        monthly_cat = line_engine.monthly_by_category(observations, start, end)
        monthly_grand = line_engine.monthly_grand_total(observations, start, end)

        for row in by_category:
            assert row.total == sum(
                r.total for r in finest if r.day == row.day and r.category == row.category
            )
        for row in grand:
            assert row.total == sum(r.total for r in by_category if r.day == row.day)
        for row in monthly_cat:
            assert row.total == sum(
                r.total for r in by_category
                if r.day.startswith(row.month) and r.category == row.category
            )
        assert sum(r.total for r in monthly_grand) == sum(r.total for r in grand) == Decimal(29)

    def test_range_levels_sum_monthly_rows(self, line_engine, observations):
        start, end = "2025-03-01", "2025-04-30"
        by_category = line_engine.range_by_category(observations, start, end)
        assert [(r.category, r.total) for r in by_category] == [
            ("X", Decimal(17)), ("Y", Decimal(10)), ("Z", Decimal(2)),
        ]
        finest = line_engine.range_by_subcategory_and_category(observations, start, end)
        monthly = line_engine.monthly_by_subcategory_and_category(observations, start, end)
        for row in finest:
            assert row.total == sum(
                r.total for r in monthly
                if r.category == row.category and r.subcategory == row.subcategory
            )
        assert line_engine.range_grand_total(observations, start, end) == Decimal(29)
        assert line_engine.range_grand_total([], start, end) == Decimal(0)

    def test_weighted_equals_raw_when_all_weights_are_one(self, line_kind, calendar, observations):
        unweighted = RollupEngine(line_kind, calendar, weighting=None)
        unit_kind = RecordKind(
            name="unit", table="Unit", fields=("a", "b"), subcategory_column="line"
        )
        unit_engine = RollupEngine(unit_kind, calendar)
        weighted = unit_engine.weighted_daily_by_subcategory(observations, "2025-03-01", "2025-04-30")
        raw = unweighted.daily_by_subcategory_and_category(observations, "2025-03-01", "2025-04-30")
        for day, buckets in weighted.items():
            for sub, total in buckets.items():
                assert total == sum(r.total for r in raw if r.day == day and r.subcategory == sub)

    def test_weighted_multiplies_by_category_weight(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "X", "L1", a=3),
            make_observation(at("2025-03-01"), "Y", "L1", a=4),
            make_observation(at("2025-03-01"), "NEW", "L1", a=5),
        ]
        weighted = line_engine.weighted_daily_by_subcategory(observations, "2025-03-01", "2025-03-01")
        assert weighted == {"2025-03-01": {"L1": Decimal(3 + 8 + 5)}}

    def test_recomputation_is_identical(self, line_engine, observations):
        first = line_engine.daily_by_subcategory_and_category(observations, "2025-03-01", "2025-04-30")
        second = line_engine.daily_by_subcategory_and_category(observations, "2025-03-01", "2025-04-30")
        assert first == second

    def test_inputs_are_not_mutated(self, line_engine, observations):
        snapshot = [dict(o.fields) for o in observations]
        line_engine.monthly_by_subcategory_and_category(observations, "2025-03-01", "2025-04-30")
        assert [dict(o.fields) for o in observations] == snapshot


class TestOrdering:

    def test_categories_follow_enumeration_then_alphabet(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "Zeta", a=1),
            make_observation(at("2025-03-01"), "Y", a=1),
            make_observation(at("2025-03-01"), "Alpha", a=1),
            make_observation(at("2025-03-01"), "X", a=1),
        ]
        rows = line_engine.daily_by_category(observations, "2025-03-01", "2025-03-01")
        assert [r.category for r in rows] == ["X", "Y", "Alpha", "Zeta"]

    def test_unknown_category_is_logged(self, line_engine, make_observation, at, caplog):
        observations = [make_observation(at("2025-03-01"), "NEW", a=1)]
        with caplog.at_level("WARNING"):
            line_engine.daily_by_category(observations, "2025-03-01", "2025-03-01")
        assert "NEW" in caplog.text

    def test_blank_labels_become_unspecified(self, line_engine, make_observation, at):
        observations = [make_observation(at("2025-03-01"), "  ", "", a=1)]
        rows = line_engine.daily_by_subcategory_and_category(observations, "2025-03-01", "2025-03-01")
        assert (rows[0].category, rows[0].subcategory) == (UNSPECIFIED, UNSPECIFIED)

    def test_days_are_ascending(self, line_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-03"), "X", a=1),
            make_observation(at("2025-03-01"), "X", a=1),
        ]
        rows = line_engine.daily_grand_total(observations, "2025-03-01", "2025-03-03")
        assert [r.day for r in rows] == ["2025-03-01", "2025-03-03"]


class TestMachineSubcategories:

    def test_each_machine_column_is_a_bucket(self, machine_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "P", M1=4, M2=None),
            make_observation(at("2025-03-01"), "Q", M1=1, M2=2),
        ]
        rows = machine_engine.daily_by_subcategory_and_category(observations, "2025-03-01", "2025-03-01")
        assert [(r.category, r.subcategory, r.total) for r in rows] == [
            ("P", "M1", Decimal(4)),
            ("P", "M2", Decimal(0)),
            ("Q", "M1", Decimal(1)),
            ("Q", "M2", Decimal(2)),
        ]

    def test_weighted_machine_totals(self, machine_engine, make_observation, at):
        observations = [
            make_observation(at("2025-03-01"), "P", M1=4, M2=2),
            make_observation(at("2025-03-01"), "Q", M1=1, M2=2),
        ]
        weighted = machine_engine.weighted_daily_by_subcategory(observations, "2025-03-01", "2025-03-01")
        assert weighted == {"2025-03-01": {"M1": Decimal(3), "M2": Decimal(3)}}

    def test_sewing_weighting(self, calendar, make_observation, at):
        engine = RollupEngine(SEWING, calendar)
        observations = [
            make_observation(at("2025-03-01"), "SP2", C1=10),
            make_observation(at("2025-03-01"), "SS", C1=10, S1=5),
        ]
        weighted = engine.weighted_daily_by_subcategory(observations, "2025-03-01", "2025-03-01")
        assert weighted["2025-03-01"]["C1"] == Decimal(22)
        assert weighted["2025-03-01"]["S1"] == Decimal(1)
        assert list(weighted["2025-03-01"])[:2] == ["C1", "C2"]
