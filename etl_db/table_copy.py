"""
Copy raw tables between schemas (e.g. [raw_data] -> [etl]).
"""
import time
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel

from etl_db.database import ETLDatabase
from etl_db.errors import is_missing_object_error
from logging_config.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RAW_TABLES = [
    "raw_certificate_info",
    "raw_commissions_detail",
    "raw_premiums",
    "raw_schedule_rates",
    "raw_individual_brokers",
    "raw_org_brokers",
    "raw_licenses",
    "raw_eo_insurance",
    "raw_perf_groups",
    "raw_fees",
]


class CopyResult(BaseModel):
    """Outcome for one table; status is copied, empty, missing or failed."""
    table: str
    status: str
    rows: int = 0
    duration: float = 0.0
    error: Optional[str] = None


def copy_table(db: ETLDatabase, source_schema: str, target_schema: str, table: str) -> CopyResult:
    """
    Replace target_schema.table with the rows of source_schema.table.

    Empty sources leave the target untouched. Missing tables and other
    failures are logged and reported in the result.
    """
    try:
        source_count = db.row_count(source_schema, table)

        if source_count == 0:
            logger.info(f"⏭️  {table}: Empty, skipping")
            return CopyResult(table=table, status="empty")

        db.truncate_table(target_schema, table)

        logger.info(f"📋 {table}: Copying {source_count:,} records...")
        start_time = time.time()
        db.execute(
            f"INSERT INTO {db.qualify(target_schema, table)} "
            f"SELECT * FROM {db.qualify(source_schema, table)}"
        )
        db.commit()
        duration = time.time() - start_time
        logger.info(f"   ✅ Copied in {duration:.2f}s")

        return CopyResult(table=table, status="copied", rows=source_count, duration=duration)

    except Exception as e:
        db.rollback()
        if is_missing_object_error(e):
            logger.warning(f"⚠️  {table}: Table not found, skipping")
            return CopyResult(table=table, status="missing", error=str(e))
        logger.error(f"❌ {table}: {e}")
        return CopyResult(table=table, status="failed", error=str(e))


def copy_tables(
    db: ETLDatabase,
    source_schema: str,
    target_schema: str,
    tables: Sequence[str] = DEFAULT_RAW_TABLES
) -> Tuple[List[CopyResult], int]:
    """
    Copy each table from source_schema to target_schema.

    Returns:
        (per-table results, total rows copied)
    """
    logger.info("=" * 70)
    logger.info(f"  Copying Raw Data: [{source_schema}] → [{target_schema}]")
    logger.info("=" * 70)

    results = [copy_table(db, source_schema, target_schema, table) for table in tables]
    total_copied = sum(result.rows for result in results)

    logger.info("=" * 70)
    logger.info(f"✅ Copy Complete: {total_copied:,} total records")
    logger.info("=" * 70)

    return results, total_copied
