"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class TrackerConfig(BaseSettings):
    """Investment tracking configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "investments.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Payment reconciliation rules
    payment_breakdown_tolerance: Decimal = Decimal("0.01")
    payment_adjustment_threshold: Decimal = Decimal("1.00")  # Gaps below this are absorbed into interest

    # Plan defaults
    default_min_investment: Decimal = Decimal("1000")
    default_max_investment: Decimal = Decimal("10000000")
    max_tenure_periods: int = 240

    # Reporting
    upcoming_due_days: int = 7

    class Config:
        env_prefix = "INVEST_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = TrackerConfig()


def get_config() -> TrackerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TrackerConfig:
    """Reload configuration from environment"""
    global config
    config = TrackerConfig()
    return config
