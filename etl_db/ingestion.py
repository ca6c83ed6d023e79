"""
Continue ingestion.

Loads only the raw tables that are empty or incomplete. A table is
complete when it already holds at least its expected minimum number of
rows; incomplete tables are truncated and reloaded from their CSV files.
"""
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from config.settings import INGEST_CONFIG
from etl_db.csv_reader import RawCsvReader
from etl_db.database import ETLDatabase
from logging_config.logger import get_logger

logger = get_logger(__name__)


class IngestTableSpec(BaseModel):
    """Target table, its source files and the row count that marks it complete."""
    table: str
    files: List[str]
    min_rows: int


DEFAULT_INGEST_TABLES = [
    IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=138000),
    IngestTableSpec(
        table="raw_commissions_detail",
        files=[
            "CommissionsDetail_20251101_20251115.csv",
            "CommissionsDetail_20251116_20251130.csv",
            "CommissionsDetail_20251201_20251215.csv",
            "CommissionsDetail_20251216_20251231.csv",
        ],
        min_rows=100000,
    ),
    IngestTableSpec(table="raw_certificate_info", files=["CertificateInfo.csv"], min_rows=90000),
    IngestTableSpec(
        table="raw_individual_brokers",
        files=["IndividualRosterExtract_20260107.csv"],
        min_rows=1000,
    ),
    IngestTableSpec(
        table="raw_org_brokers",
        files=["OrganizationRosterExtract_20260107.csv"],
        min_rows=100,
    ),
    IngestTableSpec(table="raw_licenses", files=["BrokerLicenseExtract_20260107.csv"], min_rows=1000),
    IngestTableSpec(table="raw_eo_insurance", files=["BrokerEO_20260107.csv"], min_rows=500),
    IngestTableSpec(table="raw_schedule_rates", files=["perf.csv"], min_rows=100000),
    IngestTableSpec(table="raw_perf_groups", files=["perf-group.csv"], min_rows=1000),
]

# ETLConfig.input_files key -> raw table
INPUT_FILE_TABLES = {
    "premiums": "raw_premiums",
    "commissionsDetail": "raw_commissions_detail",
    "certificateInfo": "raw_certificate_info",
    "individualBrokers": "raw_individual_brokers",
    "orgBrokers": "raw_org_brokers",
    "licenses": "raw_licenses",
    "eo": "raw_eo_insurance",
    "scheduleRates": "raw_schedule_rates",
    "perfGroups": "raw_perf_groups",
}


def apply_input_file_overrides(
    specs: Sequence[IngestTableSpec],
    input_files: Dict[str, str]
) -> List[IngestTableSpec]:
    """
    Replace source file lists with the files named in the configuration.

    Args:
        specs: Table specs to adjust
        input_files: ETLConfig.input_files; a value may list several
            files separated by commas

    Returns:
        New list of specs (the inputs are not modified)
    """
    overrides = {}
    for key, value in input_files.items():
        table = INPUT_FILE_TABLES.get(key)
        if table and value:
            overrides[table] = [name.strip() for name in value.split(",") if name.strip()]

    return [
        spec.model_copy(update={"files": overrides[spec.table]}) if spec.table in overrides else spec
        for spec in specs
    ]


def select_tables(specs: Sequence[IngestTableSpec], tables: Optional[Sequence[str]]) -> List[IngestTableSpec]:
    """Keep only the named tables; None keeps everything."""
    if not tables:
        return list(specs)

    known = {spec.table for spec in specs}
    unknown = [table for table in tables if table not in known]
    if unknown:
        raise ValueError(f"Unknown ingest table(s): {', '.join(unknown)}")
    return [spec for spec in specs if spec.table in tables]


class ContinueIngestionPipeline:
    """Ingest only tables that are empty or incomplete."""

    def __init__(
        self,
        db: ETLDatabase,
        reader: RawCsvReader,
        schema: str = "etl",
        batch_size: int = INGEST_CONFIG["continue_batch_size"],
        progress_every: int = INGEST_CONFIG["progress_every"]
    ):
        """
        Initialize pipeline.

        Args:
            db: Connected database handler
            reader: CSV reader for the raw data directory
            schema: Schema holding the raw tables
            batch_size: Rows per INSERT batch
            progress_every: Log progress each time this many rows are inserted
        """
        self.db = db
        self.reader = reader
        self.schema = schema
        self.batch_size = batch_size
        self.progress_every = progress_every

    def ingest_table(self, spec: IngestTableSpec) -> int:
        """
        Load one table unless it is already complete.

        Returns:
            Rows inserted (0 when the table was skipped)
        """
        current_count = self.db.row_count(self.schema, spec.table)

        if current_count >= spec.min_rows:
            logger.info(
                f"{spec.table}: Already has {current_count:,} rows "
                f"(min: {spec.min_rows:,}), skipping"
            )
            return 0

        logger.info(
            f"{spec.table}: Has {current_count:,} rows, needs {spec.min_rows:,}, loading..."
        )

        if current_count > 0:
            logger.info(f"  Truncating {spec.table} (had incomplete data)...")
            self.db.truncate_table(self.schema, spec.table)
            self.db.commit()

        total_inserted = 0

        for file_name in spec.files:
            if not self.reader.exists(file_name):
                logger.error(f"  File not found: {file_name}, skipping")
                continue

            logger.info(f"  Loading {file_name}...")
            columns = self.reader.read_header(file_name)
            total_inserted = self._load_file(spec.table, file_name, columns, total_inserted)

        logger.info(f"✅ {spec.table}: Complete with {total_inserted:,} rows")
        return total_inserted

    def _load_file(self, table: str, file_name: str, columns: List[str], total_inserted: int) -> int:
        """Insert one file in batches; returns the running total for the table."""
        file_rows = 0
        next_progress = (total_inserted // self.progress_every + 1) * self.progress_every

        for batch in self.reader.iter_batches(file_name, self.batch_size):
            try:
                self.db.insert_rows(self.schema, table, columns, batch)
                self.db.commit()
            except Exception as e:
                logger.error(f"  Error at row {file_rows}: {e}")
                self.db.rollback()
                raise

            file_rows += len(batch)
            total_inserted += len(batch)

            if total_inserted >= next_progress:
                logger.info(f"    {total_inserted:,} rows inserted...")
                next_progress = (total_inserted // self.progress_every + 1) * self.progress_every

        if file_rows == 0:
            logger.info(f"  {file_name} is empty, skipping")
        else:
            logger.info(f"    {total_inserted:,} rows inserted...")

        return total_inserted

    def final_counts(self, specs: Sequence[IngestTableSpec]) -> Dict[str, int]:
        return {spec.table: self.db.row_count(self.schema, spec.table) for spec in specs}

    def run(self, specs: Sequence[IngestTableSpec] = DEFAULT_INGEST_TABLES) -> Dict[str, int]:
        """
        Ingest every table, then report final row counts.

        Returns:
            {table: row count after ingestion}
        """
        logger.info("=" * 70)
        logger.info("SQL Server ETL - Continue Ingestion")
        logger.info("=" * 70)
        logger.info(f"CSV Path: {self.reader.data_dir}")

        for spec in specs:
            self.ingest_table(spec)

        logger.info("=" * 70)
        logger.info("Ingestion Complete - Final Counts")
        logger.info("=" * 70)

        counts = self.final_counts(specs)
        for table, count in counts.items():
            logger.info(f"{table}: {count:,} rows")

        return counts
