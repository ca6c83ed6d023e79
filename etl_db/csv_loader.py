"""
Dynamic CSV loader.

Creates each raw table from the header of its CSV file (every column
NVARCHAR(MAX)) and bulk loads the data.
"""
from typing import List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel

from config.settings import INGEST_CONFIG
from etl_db.csv_reader import RawCsvReader
from etl_db.database import ETLDatabase
from etl_db.diagnostics import table_counts
from logging_config.logger import get_logger

logger = get_logger(__name__)


class CsvTableMapping(BaseModel):
    """CSV file name (or 'prefix*suffix' pattern) loaded into one table."""
    pattern: str
    table: str


class LoadSummary(BaseModel):
    table: str
    files: int
    rows: int


DEFAULT_CSV_MAPPINGS = [
    # Current broker/org extracts
    CsvTableMapping(pattern="IndividualRosterExtract_20260107.csv", table="raw_individual_brokers"),
    CsvTableMapping(pattern="OrganizationRosterExtract_20260107.csv", table="raw_org_brokers"),
    CsvTableMapping(pattern="BrokerLicenseExtract_20260107.csv", table="raw_licenses"),
    CsvTableMapping(pattern="BrokerEO_20260107.csv", table="raw_eo_insurance"),
    CsvTableMapping(pattern="Fees_20260107.csv", table="raw_fees"),
    # Legacy rosters (fallback for brokers missing from the current extract)
    CsvTableMapping(pattern="individual-roster-old.csv", table="raw_individual_brokers_legacy"),
    CsvTableMapping(pattern="org-old.csv", table="raw_org_brokers_legacy"),
    # Main data files
    CsvTableMapping(pattern="CertificateInfo.csv", table="raw_certificate_info"),
    CsvTableMapping(pattern="perf.csv", table="raw_schedule_rates"),
    CsvTableMapping(pattern="perf-group.csv", table="raw_perf_groups"),
    CsvTableMapping(pattern="premiums.csv", table="raw_premiums"),
    CsvTableMapping(pattern="CommissionsDetail_*.csv", table="raw_commissions_detail"),
]


class CsvLoader:
    """Create raw tables from CSV headers and bulk load them."""

    def __init__(
        self,
        db: ETLDatabase,
        reader: RawCsvReader,
        schema: str = "etl",
        batch_size: int = INGEST_CONFIG["bulk_batch_size"],
        row_limit: int = 0,
        progress_every: int = INGEST_CONFIG["bulk_progress_every"]
    ):
        """
        Initialize loader.

        Args:
            db: Connected database handler
            reader: CSV reader for the raw data directory
            schema: Target schema
            batch_size: Rows per bulk insert
            row_limit: Maximum rows per file (0 = all rows)
            progress_every: Log progress every this many rows
        """
        self.db = db
        self.reader = reader
        self.schema = schema
        self.batch_size = batch_size
        self.row_limit = row_limit
        self.progress_every = progress_every

    def load_file(self, file_name: str, table: str, columns: Sequence[str]) -> int:
        """
        Load one CSV file into an existing table.

        Returns:
            Rows loaded (0 when the file is missing)
        """
        if not self.reader.exists(file_name):
            logger.warning(f"⚠️  File not found: {file_name}")
            return 0

        limit_msg = f" (LIMIT: {self.row_limit} rows)" if self.row_limit > 0 else ""
        logger.info(
            f"   Loading {file_name} ({self.reader.file_size_mb(file_name):.2f} MB){limit_msg}..."
        )

        total_rows = 0
        batches = self.reader.iter_batches(
            file_name, self.batch_size, limit=self.row_limit or None, sanitize=True
        )
        for batch in batches:
            try:
                self.db.insert_rows(self.schema, table, columns, batch)
                self.db.commit()
            except Exception as e:
                logger.error(f"❌ Error bulk inserting into {table}: {e}")
                logger.error(f"   Columns: {', '.join(columns)}")
                self.db.rollback()
                raise

            previous = total_rows
            total_rows += len(batch)
            if total_rows // self.progress_every > previous // self.progress_every:
                logger.info(f"   ... {total_rows:,} rows loaded")

        logger.info(f"   ✅ {total_rows:,} rows from {file_name}")
        return total_rows

    def load_mapping(self, mapping: CsvTableMapping) -> Optional[LoadSummary]:
        """
        Recreate a table from its first file's header and load every matching file.

        Returns:
            Summary, or None when no file or no columns were found
        """
        files = self.reader.find_matching_files(mapping.pattern)
        if not files:
            logger.warning(f"⚠️  No files found for pattern: {mapping.pattern}")
            return None

        logger.info(f"📁 {mapping.table} ({len(files)} file(s))")

        first_file = files[0]
        if not self.reader.exists(first_file):
            logger.warning(f"⚠️  File not found: {first_file}")
            return None

        columns = self.reader.read_sanitized_columns(first_file)
        if not columns:
            logger.warning(f"⚠️  No columns found in {first_file}")
            return None

        self.db.create_text_table(self.schema, mapping.table, columns)
        self.db.commit()

        total_rows = sum(self.load_file(file_name, mapping.table, columns) for file_name in files)
        return LoadSummary(table=mapping.table, files=len(files), rows=total_rows)

    def run(self, mappings: Sequence[CsvTableMapping] = DEFAULT_CSV_MAPPINGS) -> pd.DataFrame:
        """
        Load every mapping.

        Returns:
            Summary DataFrame with columns table, files, rows
        """
        logger.info("=" * 70)
        logger.info("SQL Server CSV Loader (Dynamic Schema + Bulk Insert)")
        logger.info("=" * 70)
        logger.info(f"CSV Path: {self.reader.data_dir}")
        if self.row_limit > 0:
            logger.warning(f"⚠️  ROW LIMIT: {self.row_limit} rows per file (test mode)")

        summary: List[LoadSummary] = []
        for mapping in mappings:
            result = self.load_mapping(mapping)
            if result is not None:
                summary.append(result)

        df = pd.DataFrame([s.model_dump() for s in summary], columns=["table", "files", "rows"])

        logger.info("=" * 70)
        logger.info("LOAD SUMMARY")
        logger.info("=" * 70)
        if not df.empty:
            for line in df.to_string(index=False).splitlines():
                logger.info(line)

        return df

    def verify_counts(self, summary: pd.DataFrame) -> pd.DataFrame:
        """Actual row counts of the loaded tables (columns tbl, cnt)."""
        logger.info("Verifying counts in database...")
        counts = table_counts(self.db, self.schema, list(summary["table"]))
        for line in counts.to_string(index=False).splitlines():
            logger.info(line)
        return counts
