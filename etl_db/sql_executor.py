"""
SQL script execution.

Scripts use sqlcmd-style variables ($(ETL_SCHEMA), $(MAX_BROKERS), ...)
and GO batch separators; both are resolved here before the batches are
sent to the database one at a time.
"""
import re
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from config.etl_config import DebugConfig, ETLConfig, SchemaNames
from config.settings import RETRY_CONFIG
from etl_db.database import ETLDatabase
from etl_db.errors import SQLScriptError, retry_with_backoff
from logging_config.logger import get_logger

logger = get_logger(__name__)

_GO_SEPARATOR = re.compile(r"^[ \t]*GO[ \t]*(?:--[^\n]*)?$", re.IGNORECASE | re.MULTILINE)

DEBUG_PREVIEW_CHARS = 500


class SQLExecutionResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    records_affected: int = 0
    duration: float
    error: Optional[BaseException] = None


def substitute_schema_variables(sql: str, schemas: SchemaNames) -> str:
    """Replace $(..._SCHEMA) placeholders with configured schema names."""
    replacements = {
        "SOURCE_SCHEMA": schemas.source,
        "TRANSITION_SCHEMA": schemas.transition,
        "ETL_SCHEMA": schemas.processing,
        "PROCESSING_SCHEMA": schemas.processing,
        "PRODUCTION_SCHEMA": schemas.production,
    }
    for name, value in replacements.items():
        sql = sql.replace(f"$({name})", value)
    return sql


def substitute_debug_variables(sql: str, debug: DebugConfig) -> str:
    """
    Replace $(DEBUG_MODE) and $(MAX_<ENTITY>) placeholders.

    Returns the SQL unchanged when debug mode is disabled.
    """
    if not debug.enabled:
        return sql

    sql = sql.replace("$(DEBUG_MODE)", "1")
    for entity, limit in debug.max_records.items():
        sql = sql.replace(f"$(MAX_{entity.upper()})", str(limit))
    return sql


def split_batches(sql: str) -> List[str]:
    """Split a script on GO lines, dropping empty batches."""
    return [batch.strip() for batch in _GO_SEPARATOR.split(sql) if batch.strip()]


def prepare_script(sql: str, config: ETLConfig, debug_mode: bool = False) -> str:
    """Apply schema and (optionally) debug substitutions."""
    processed = substitute_schema_variables(sql, config.database.schemas)
    if debug_mode:
        processed = substitute_debug_variables(processed, config.debug_mode)
    return processed


def execute_sql_script(
    db: ETLDatabase,
    script_path: Path,
    config: ETLConfig,
    debug_mode: bool = False,
    retry: bool = True
) -> SQLExecutionResult:
    """
    Execute one SQL script.

    Each GO batch is committed on success. Transient failures are retried
    with backoff after rolling back the failed batch.

    Args:
        db: Connected database handler
        script_path: Path to the .sql file
        config: ETL configuration (schema names, debug limits)
        debug_mode: Apply debug variable substitution
        retry: Retry transient failures

    Returns:
        SQLExecutionResult; failures are reported in the result, not raised
    """
    script_path = Path(script_path)
    start_time = time.time()
    records_affected = 0
    batch_number = None

    try:
        final_sql = prepare_script(script_path.read_text(encoding="utf-8"), config, debug_mode)

        if debug_mode:
            logger.info(f"🐛 DEBUG: Processed SQL (first {DEBUG_PREVIEW_CHARS} chars):")
            logger.info(final_sql[:DEBUG_PREVIEW_CHARS] + "...")

        batches = split_batches(final_sql)
        logger.debug(f"{script_path.name}: {len(batches)} batch(es)")

        def on_retry(attempt: int, error: BaseException):
            db.rollback()
            logger.info(f"    Retry attempt {attempt} for {script_path.name}")

        for batch_number, batch in enumerate(batches, start=1):
            if retry:
                affected = retry_with_backoff(
                    lambda: db.execute_script_batch(batch),
                    max_retries=RETRY_CONFIG["max_retries"],
                    base_delay=RETRY_CONFIG["base_delay"],
                    max_delay=RETRY_CONFIG["max_delay"],
                    on_retry=on_retry,
                )
            else:
                affected = db.execute_script_batch(batch)
            db.commit()
            records_affected += affected

    except Exception as e:
        if db.conn is not None:
            db.rollback()
        error = SQLScriptError(script_path.name, str(e), batch_number)
        error.__cause__ = e
        return SQLExecutionResult(
            success=False,
            records_affected=records_affected,
            duration=time.time() - start_time,
            error=error,
        )

    return SQLExecutionResult(
        success=True,
        records_affected=records_affected,
        duration=time.time() - start_time,
    )


def execute_sql_scripts(
    db: ETLDatabase,
    scripts: Sequence[Path],
    config: ETLConfig,
    on_progress: Optional[Callable[[str, int, int], None]] = None
) -> List[SQLExecutionResult]:
    """
    Execute scripts in order, stopping at the first failure.

    Raises:
        SQLScriptError: From the first script that fails
    """
    results = []
    for index, script_path in enumerate(scripts, start=1):
        script_path = Path(script_path)
        if on_progress:
            on_progress(script_path.name, index, len(scripts))

        result = execute_sql_script(db, script_path, config, debug_mode=config.debug_mode.enabled)
        results.append(result)

        if not result.success:
            raise result.error

    return results
