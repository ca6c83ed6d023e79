"""
Application configuration settings.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base paths
PROJECT_ROOT = Path(__file__).parent.parent
SQL_DIR = Path(os.getenv("ETL_SQL_DIR", PROJECT_ROOT / "sql"))
DATA_DIR = PROJECT_ROOT / "data"

# Directory holding the client CSV extracts
CSV_DATA_PATH = Path(os.getenv("CSV_DATA_PATH", DATA_DIR / "rawdata"))

# Shared appsettings.json (same file the application side reads)
APPSETTINGS_PATH = Path(os.getenv("ETL_APPSETTINGS", Path.cwd() / "appsettings.json"))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # INFO, DEBUG, WARNING, ERROR
VERBOSE = os.getenv("VERBOSE", "false").lower() == "true"
LOG_FILE = os.getenv("LOG_FILE", "")  # optional copy of console output

# SQL Server connection settings
DB_CONFIG = {
    "odbc_driver": os.getenv("ODBC_DRIVER", "ODBC Driver 18 for SQL Server"),
    "request_timeout": 300,      # seconds
    "connection_timeout": 30,    # seconds
    "pool_size": 5,
}

# CSV ingestion
INGEST_CONFIG = {
    "continue_batch_size": 500,   # smaller batches for stability on large files
    "bulk_batch_size": 5000,
    "progress_every": 10000,
    "bulk_progress_every": 50000,
}

# Retry policy for transient SQL failures
RETRY_CONFIG = {
    "max_retries": 3,
    "base_delay": 1.0,   # seconds
    "max_delay": 30.0,   # seconds
}

# Far-future expiration date fix
GRACE_PERIOD_CONFIG = {
    "cutoff_date": "2050-01-01",
    "fallback_days": 30,
    "modifier_user_id": 1,
    "backup_suffix": "_Backup_GracePeriodFix",
}
