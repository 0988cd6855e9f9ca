"""
conftest.py: Shared pytest fixtures for the factory metrics test suite.

No database fixtures are defined here. All tests are pure unit tests: the
DataFrame store and small fake connections stand in for PostgreSQL.
"""

from datetime import datetime

import pandas as pd
import pytest
import pytz

from factory_metrics.core.calendar.models import LocalCalendar
from factory_metrics.core.domain.models import Observation, RatioDayRecord
from factory_metrics.core.domain.settings import EngineSettings, RatioFormula, RecordKind


# ---------------------------------------------------------------------------
# Calendar & settings
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def calendar():
    """Site calendar fixed at UTC+08:00 (Asia/Kuala_Lumpur)."""
    return LocalCalendar()


@pytest.fixture(scope="session")
def settings():
    """Default engine settings: 720-minute constants, 366-day range cap."""
    return EngineSettings()


@pytest.fixture(scope="session")
def at():
    """
    Factory turning a local wall-clock time into an aware UTC instant.

    at("2025-03-01", 0, 0, 1) -> 2025-02-28T16:00:01+00:00
    """
    site = pytz.FixedOffset(480)

    def _at(day: str, hour: int = 12, minute: int = 0, second: int = 0) -> datetime:
        y, m, d = (int(part) for part in day.split("-"))
        return datetime(y, m, d, hour, minute, second, tzinfo=site).astimezone(pytz.UTC)

    return _at


# ---------------------------------------------------------------------------
# Small record kinds
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def line_kind():
    """
    Record kind with declared fields {a, b}, categories X then Y, Y weighing 2,
    and the subcategory read from the 'line' column.
    """
    return RecordKind(
        name="line",
        table="Line",
        fields=("a", "b"),
        categories=("X", "Y"),
        weights={"Y": 2},
        subcategory_column="line",
    )


@pytest.fixture(scope="session")
def machine_kind():
    """Record kind whose fields M1, M2 are machine subcategories."""
    return RecordKind(
        name="machine",
        table="Machine",
        fields=("M1", "M2"),
        categories=("P", "Q"),
        weights={"P": "0.5"},
        fields_are_subcategories=True,
    )


@pytest.fixture(scope="session")
def single_target_formula():
    """Ratio formula with one target of weight 1, read from column 'target'."""
    return RatioFormula(
        name="single",
        table="Staffing",
        target_weights={"target": 1},
    )


@pytest.fixture
def make_observation():
    def _make(instant, category="X", subcategory=None, **fields):
        return Observation(instant=instant, category=category, fields=fields, subcategory=subcategory)
    return _make


@pytest.fixture
def make_record():
    def _make(instant, normal_workers=None, normal_minutes=None, ot_workers=None, ot_minutes=None, **targets):
        return RatioDayRecord(
            instant=instant,
            normal_workers=normal_workers,
            normal_minutes=normal_minutes,
            ot_workers=ot_workers,
            ot_minutes=ot_minutes,
            targets=targets,
        )
    return _make


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

@pytest.fixture
def line_frame(at):
    """Line rows around the 2025-03-01 local midnight boundary."""
    return pd.DataFrame([
        {"operationDate": at("2025-02-28", 23, 59, 59), "operationType": "X", "line": "L1", "a": 1, "b": 1},
        {"operationDate": at("2025-03-01", 0, 0, 0), "operationType": "X", "line": "L1", "a": 10, "b": 5},
        {"operationDate": at("2025-03-01", 8, 30, 0), "operationType": "X", "line": "L2", "a": 3, "b": None},
        {"operationDate": at("2025-03-01", 9, 0, 0), "operationType": "Y", "line": "L1", "a": 4, "b": 0},
        {"operationDate": at("2025-03-02", 7, 0, 0), "operationType": "Y", "line": "", "a": 2, "b": 2},
    ])


@pytest.fixture
def staffing_frame(at):
    """Scenario B staffing on 2025-03-01 plus a second, smaller day."""
    return pd.DataFrame([
        {
            "operationDate": at("2025-03-01", 8),
            "m2_workers_normal": 2, "m3_operating_mins_normal": 480,
            "m4_workers_ot": 1, "m5_operating_mins_ot": 120, "target": 100,
        },
        {
            "operationDate": at("2025-03-02", 8),
            "m2_workers_normal": 1, "m3_operating_mins_normal": 720,
            "m4_workers_ot": 0, "m5_operating_mins_ot": 0, "target": 50,
        },
    ])
