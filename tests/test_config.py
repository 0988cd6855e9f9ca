"""
test_config.py: Environment configuration, engine settings and the CLI entry point.
"""

import json
from decimal import Decimal

import pandas as pd
import pytest

from factory_metrics import app
from factory_metrics.core.db.fetchers import DataFrameObservationStore
from factory_metrics.core.db.pool import DatabasePool
from factory_metrics.core.domain.catalog import RATIO_FORMULAS, RECORD_KINDS
from factory_metrics.core.domain.settings import EngineSettings
from factory_metrics.utils.config import get_app_config, get_database_config, validate_config

_DB_ENV = {
    "PRODUCTIONDB_HOST": "db.local",
    "PRODUCTIONDB_PORT": "5432",
    "PRODUCTIONDB_NAME": "production",
    "PRODUCTIONDB_USER": "reader",
    "PRODUCTIONDB_PASS": "secret",
}

_DB_CONFIG = {
    "host": "db.local", "port": "5432", "database": "production",
    "user": "reader", "password": "secret",
}

_APP_ENV = (
    "SITE_TIMEZONE", "SITE_UTC_OFFSET_MINUTES", "RATED_MINUTES_PER_WORKER_DAY",
    "OT_MINUTES_PER_NORMAL_DAY", "MAX_RANGE_DAYS", "LOG_LEVEL", "PRODUCTIONDB_SSLMODE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(_DB_ENV) + list(_APP_ENV):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def db_env(clean_env):
    for name, value in _DB_ENV.items():
        clean_env.setenv(name, value)
    return clean_env


class TestDatabaseConfig:

    def test_complete_config(self, db_env):
        config = get_database_config()
        assert config["host"] == "db.local"
        assert config["database"] == "production"
        assert config["sslmode"] == "disable"

    def test_sslmode_override(self, db_env):
        db_env.setenv("PRODUCTIONDB_SSLMODE", "require")
        assert get_database_config()["sslmode"] == "require"

    def test_missing_values(self, clean_env):
        with pytest.raises(ValueError, match="host"):
            get_database_config()
        assert validate_config()[0].startswith("PRODUCTION:")

    def test_validate_config_ok(self, db_env):
        assert validate_config() == []

    def test_pool_requires_config(self):
        with pytest.raises(ValueError):
            DatabasePool({"host": "db.local"})

    def test_pool_stats_before_initialization(self):
        stats = DatabasePool(_DB_CONFIG).get_stats()
        assert stats["pool_initialized"] is False
        assert stats["errors"] == 0


class TestAppConfig:

    def test_defaults(self, clean_env):
        config = get_app_config()
        assert config["timezone"] == "Asia/Kuala_Lumpur"
        assert config["utc_offset_minutes"] == 480
        assert config["max_range_days"] == 366
        assert config["log_level"] == "INFO"

    def test_settings_from_environment(self, clean_env):
        clean_env.setenv("RATED_MINUTES_PER_WORKER_DAY", "600")
        clean_env.setenv("OT_MINUTES_PER_NORMAL_DAY", "480.5")
        clean_env.setenv("MAX_RANGE_DAYS", "93")
        settings = EngineSettings.from_app_config(get_app_config())
        assert settings.rated_minutes_per_worker_day == Decimal(600)
        assert settings.ot_minutes_per_normal_day == Decimal("480.5")
        assert settings.max_range_days == 93
        assert settings.calendar().utc_offset_minutes == 480

    def test_zero_constant_is_rejected(self):
        with pytest.raises(ValueError):
            EngineSettings(ot_minutes_per_normal_day=0)

    def test_settings_are_frozen(self):
        settings = EngineSettings()
        with pytest.raises(AttributeError):
            settings.max_range_days = 1


class TestEntryPoint:
    """main() against in-memory stores; PostgresObservationStore is patched out."""

    @staticmethod
    def _use_frames(monkeypatch, frames):
        monkeypatch.setattr(
            app, "PostgresObservationStore", lambda **kwargs: DataFrameObservationStore(frames, **kwargs)
        )

    def test_invalid_range_exit_code(self, db_env):
        assert app.main(["--start", "2025-03-02", "--end", "2025-03-01"]) == app.EXIT_INVALID_REQUEST

    def test_missing_db_config_exit_code(self, clean_env):
        assert app.main(["--start", "2025-03-01", "--end", "2025-03-02"]) == app.EXIT_INVALID_REQUEST

    def test_store_failure_exit_code(self, db_env, monkeypatch):
        self._use_frames(monkeypatch, {})
        code = app.main(["--start", "2025-03-01", "--end", "2025-03-02", "--kind", "sewing", "--formula", "sewing"])
        assert code == app.EXIT_STORE_FAILURE

    def test_prints_json(self, db_env, monkeypatch, capsys):
        self._use_frames(monkeypatch, {
            "Inspection": _empty_frame_for(RECORD_KINDS["inspection"].source_columns),
            "EfficiencyInspection100": _empty_frame_for(RATIO_FORMULAS["inspection100"].source_columns),
        })
        code = app.main([
            "--start", "2025-03-01", "--end", "2025-03-02",
            "--kind", "inspection", "--formula", "inspection100",
        ])
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["range"] == {"start": "2025-03-01", "end": "2025-03-02"}
        assert payload["has_data"] is False
        assert set(payload["rollups"]) == {"inspection"}
        assert set(payload["ratios"]) == {"inspection100"}


def _empty_frame_for(columns):
    return pd.DataFrame(columns=list(columns))
