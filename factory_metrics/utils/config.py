"""
Configuration Management

Simple utility for loading and validating environment configuration.
"""

import os
from typing import Optional
from dotenv import load_dotenv


def load_config(env_path: Optional[str] = None) -> bool:
    """
    Load environment configuration from .env file.

    Args:
        env_path: Optional path to .env file. If None, searches in current directory.

    Returns:
        bool: True if .env file was found and loaded, False otherwise
    """
    if env_path:
        return load_dotenv(env_path)
    return load_dotenv()


def get_database_config() -> dict:
    """
    Get the production database configuration.

    Returns:
        dict: psycopg2 connection keyword arguments

    Raises:
        ValueError: If required configuration is missing
    """
    config = {
        "host": os.getenv("PRODUCTIONDB_HOST"),
        "port": os.getenv("PRODUCTIONDB_PORT"),
        "database": os.getenv("PRODUCTIONDB_NAME"),
        "user": os.getenv("PRODUCTIONDB_USER"),
        "password": os.getenv("PRODUCTIONDB_PASS"),
    }

    # Validate
    missing = [k for k, v in config.items() if not v]
    if missing:
        raise ValueError(
            f"Missing production database configuration: {missing}. "
            f"Please check your .env file."
        )

    config["sslmode"] = os.getenv("PRODUCTIONDB_SSLMODE", "disable")
    return config


def get_app_config() -> dict:
    """
    Get application configuration settings.

    Returns:
        dict: Application settings (numeric constants are kept as strings
        so they convert to Decimal without binary rounding)
    """
    return {
        "timezone": os.getenv("SITE_TIMEZONE", "Asia/Kuala_Lumpur"),
        "utc_offset_minutes": int(os.getenv("SITE_UTC_OFFSET_MINUTES", "480")),
        "rated_minutes_per_worker_day": os.getenv("RATED_MINUTES_PER_WORKER_DAY", "720"),
        "ot_minutes_per_normal_day": os.getenv("OT_MINUTES_PER_NORMAL_DAY", "720"),
        "max_range_days": int(os.getenv("MAX_RANGE_DAYS", "366")),
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
    }


def validate_config() -> list:
    """
    Validate all required configuration is present.

    Returns:
        list: List of missing configuration items (empty if all valid)
    """
    missing = []

    # Check PRODUCTION config
    try:
        get_database_config()
    except ValueError as e:
        missing.append(f"PRODUCTION: {str(e)}")

    # Check numeric app settings
    try:
        get_app_config()
    except ValueError as e:
        missing.append(f"APP: {str(e)}")

    return missing
