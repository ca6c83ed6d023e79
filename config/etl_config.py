"""
ETL configuration loader.

Priority (highest first):
    1. Overrides passed by the caller (CLI flags)
    2. Environment variables
    3. appsettings.json (camelCase keys, shared with the application)
    4. Defaults
"""
import os
import re
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.engine import URL, make_url

from config.settings import APPSETTINGS_PATH, DB_CONFIG
from etl_db.errors import ConfigurationError
from logging_config.logger import get_logger

logger = get_logger(__name__)


# appsettings.json key -> environment variable, per input file
INPUT_FILE_KEYS = {
    "premiums": "INPUT_PREMIUMS",
    "certificateInfo": "INPUT_CERTIFICATE_INFO",
    "commissionsDetail": "INPUT_COMMISSIONS_DETAIL",
    "individualBrokers": "INPUT_INDIVIDUAL_BROKERS",
    "orgBrokers": "INPUT_ORG_BROKERS",
    "licenses": "INPUT_LICENSES",
    "eo": "INPUT_EO",
    "scheduleRates": "INPUT_SCHEDULE_RATES",
    "perfGroups": "INPUT_PERF_GROUPS",
    "fees": "INPUT_FEES",
}

DEFAULT_MAX_RECORDS = {
    "brokers": 100,
    "groups": 50,
    "policies": 1000,
    "premiums": 5000,
    "hierarchies": 100,
    "proposals": 50,
}

CONNECTION_STRING_FORMAT = (
    "Server=...;Database=...;User Id=...;Password=...;"
    "TrustServerCertificate=True;Encrypt=True;"
)


class SchemaNames(BaseModel):
    """Schema aliases used by SQL scripts via $(..._SCHEMA) variables."""
    source: str = Field("new_data", description="Client source data")
    transition: str = Field("raw_data", description="Raw copy of the source")
    processing: str = Field("etl", description="ETL working schema")
    production: str = Field("dbo", description="Production schema")


class DatabaseConfig(BaseModel):
    connection_string: str = ""
    url: str = Field("", description="SQLAlchemy URL; takes precedence over the connection string")
    schemas: SchemaNames = Field(default_factory=SchemaNames)


class DebugConfig(BaseModel):
    """Debug mode limits the number of records SQL scripts process."""
    enabled: bool = False
    max_records: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_MAX_RECORDS))


class ETLConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    input_files: Dict[str, str] = Field(default_factory=dict)
    debug_mode: DebugConfig = Field(default_factory=DebugConfig)


def parse_connection_string(conn_str: str) -> Dict[str, Any]:
    """
    Parse a SQL Server connection string.

    Args:
        conn_str: "Server=...;Database=...;User Id=...;Password=...;Encrypt=...;"

    Returns:
        Dict with server, database, user, password, encrypt, trust_server_certificate
    """
    parts: Dict[str, str] = {}
    for part in conn_str.split(";"):
        key, sep, value = part.partition("=")
        if key.strip() and sep:
            parts[key.strip().lower()] = value.strip()

    return {
        "server": parts.get("server") or parts.get("data source"),
        "database": parts.get("database") or parts.get("initial catalog"),
        "user": parts.get("user id") or parts.get("uid") or parts.get("user"),
        "password": parts.get("password") or parts.get("pwd"),
        "encrypt": parts.get("encrypt", "").lower() != "false",
        "trust_server_certificate": parts.get("trustservercertificate", "").lower() == "true",
    }


def _read_appsettings(config_path: Path) -> Dict[str, Any]:
    """Load appsettings.json; a missing or malformed file yields {}."""
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return {}


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name, "")
    try:
        return int(value) if value else None
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}")
        return None


def _env_connection_string() -> str:
    """Connection string from $SQLSERVER or the four SQLSERVER_* variables."""
    connection_string = os.getenv("SQLSERVER", "")
    if connection_string:
        return connection_string

    server = os.getenv("SQLSERVER_HOST")
    database = os.getenv("SQLSERVER_DATABASE")
    user = os.getenv("SQLSERVER_USER")
    password = os.getenv("SQLSERVER_PASSWORD")

    if server and database and user and password:
        return (
            f"Server={server};Database={database};User Id={user};Password={password};"
            "TrustServerCertificate=True;Encrypt=True;"
        )
    return ""


def load_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[Path] = None
) -> ETLConfig:
    """
    Load ETL configuration from appsettings.json and environment variables.

    Args:
        overrides: Partial config in ETLConfig field names, e.g.
            {"debug_mode": {"enabled": True}, "database": {"schemas": {"processing": "poc_etl"}}}
        config_path: appsettings.json location (default: settings.APPSETTINGS_PATH)

    Returns:
        Complete ETL configuration
    """
    file_config = _read_appsettings(Path(config_path) if config_path else APPSETTINGS_PATH)
    file_db = file_config.get("database") or {}
    file_schemas = file_db.get("schemas") or {}
    file_inputs = file_config.get("inputFiles") or {}
    file_debug = file_config.get("debugMode") or {}
    file_max = file_debug.get("maxRecords") or {}

    schemas = SchemaNames(
        source=os.getenv("SOURCE_SCHEMA") or file_schemas.get("source") or "new_data",
        transition=os.getenv("TRANSITION_SCHEMA") or file_schemas.get("transition") or "raw_data",
        processing=os.getenv("PROCESSING_SCHEMA") or file_schemas.get("processing") or "etl",
        production=os.getenv("PRODUCTION_SCHEMA") or file_schemas.get("production") or "dbo",
    )

    database = DatabaseConfig(
        connection_string=_env_connection_string() or file_db.get("connectionString") or "",
        url=os.getenv("DATABASE_URL") or file_db.get("url") or "",
        schemas=schemas,
    )

    input_files = {
        key: os.getenv(env_name) or file_inputs.get(key) or ""
        for key, env_name in INPUT_FILE_KEYS.items()
    }

    max_records = {
        name: _env_int(f"MAX_{name.upper()}") or file_max.get(name) or default
        for name, default in DEFAULT_MAX_RECORDS.items()
    }
    debug_mode = DebugConfig(
        enabled=os.getenv("DEBUG_MODE") == "true" or bool(file_debug.get("enabled", False)),
        max_records=max_records,
    )

    config = ETLConfig(database=database, input_files=input_files, debug_mode=debug_mode)

    if overrides:
        config = _apply_overrides(config, overrides)

    return config


def _apply_overrides(config: ETLConfig, overrides: Dict[str, Any]) -> ETLConfig:
    """Deep-merge overrides into the config, ignoring None values."""

    def merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(base)
        for key, value in extra.items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = merge(merged[key], value)
            elif value != "":
                merged[key] = value
        return merged

    return ETLConfig.model_validate(merge(config.model_dump(), overrides))


def build_engine_url(config: ETLConfig) -> URL:
    """
    Build the SQLAlchemy URL for the configured database.

    Raises:
        ConfigurationError: If neither a URL nor a complete connection string is set
    """
    if config.database.url:
        return make_url(config.database.url)

    if not config.database.connection_string:
        raise ConfigurationError("Database connection string is required")

    parsed = parse_connection_string(config.database.connection_string)
    if not all(parsed[key] for key in ("server", "database", "user", "password")):
        raise ConfigurationError(
            f"Invalid connection string. Expected format: {CONNECTION_STRING_FORMAT}"
        )

    host, _, port = parsed["server"].removeprefix("tcp:").partition(",")

    return URL.create(
        "mssql+pyodbc",
        username=parsed["user"],
        password=parsed["password"],
        host=host,
        port=int(port) if port else None,
        database=parsed["database"],
        query={
            "driver": DB_CONFIG["odbc_driver"],
            "Encrypt": "yes" if parsed["encrypt"] else "no",
            "TrustServerCertificate": "yes" if parsed["trust_server_certificate"] else "no",
        },
    )


def validate_config(config: ETLConfig) -> List[str]:
    """
    Validate configuration.

    Returns:
        List of error messages (empty when the config is valid)
    """
    errors = []

    if not config.database.connection_string and not config.database.url:
        errors.append("Database connection string is required")

    schemas = config.database.schemas
    if not schemas.source:
        errors.append("Source schema name is required")
    if not schemas.transition:
        errors.append("Transition schema name is required")
    if not schemas.processing:
        errors.append("Processing schema name is required")
    if not schemas.production:
        errors.append("Production schema name is required")

    return errors


def masked_config(config: ETLConfig) -> Dict[str, Any]:
    """Config as a dict with passwords masked."""
    data = config.model_dump()
    db = data["database"]
    if db["connection_string"]:
        db["connection_string"] = re.sub(
            r"(Password|Pwd)=[^;]+", r"\1=***", db["connection_string"], flags=re.IGNORECASE
        )
    if db["url"]:
        db["url"] = make_url(db["url"]).render_as_string(hide_password=True)
    return data


def log_config(config: ETLConfig) -> None:
    """Log the configuration (masked)."""
    logger.info("ETL Configuration:")
    logger.info("=" * 70)
    for line in json.dumps(masked_config(config), indent=2).splitlines():
        logger.info(line)
    logger.info("=" * 70)
