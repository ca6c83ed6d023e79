"""
Shared helpers for the command-line entry points.
"""
import argparse
from typing import Any, Dict, Optional

from config.etl_config import ETLConfig, load_config, validate_config
from etl_db.database import ETLDatabase
from etl_db.errors import ConfigurationError, format_error
from logging_config.logger import get_logger

logger = get_logger(__name__)


def add_config_argument(parser: argparse.ArgumentParser):
    parser.add_argument("--config", type=str, default=None, help="Path to appsettings.json")


def load_validated_config(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> ETLConfig:
    """
    Load configuration and fail fast when it is incomplete.

    Raises:
        ConfigurationError: With every validation message
    """
    config = load_config(overrides=overrides, config_path=config_path)
    errors = validate_config(config)
    if errors:
        raise ConfigurationError(
            "Configuration validation failed: " + "; ".join(errors)
            + ". Please check appsettings.json or set environment variables."
        )
    return config


def open_database(config: ETLConfig) -> ETLDatabase:
    """Database handler for the configured server (use as a context manager)."""
    return ETLDatabase.from_config(config)


def report_failure(error: BaseException) -> int:
    """Log a fatal error and return the process exit code."""
    logger.error(format_error(error))
    return 1
