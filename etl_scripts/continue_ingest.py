"""
Continue CSV ingestion: load only raw tables that are empty or incomplete.

Usage:
    etl-continue-ingest
    etl-continue-ingest --tables raw_premiums raw_licenses
    CSV_DATA_PATH=/data/rawdata etl-continue-ingest
"""
import argparse
import sys

from config.settings import CSV_DATA_PATH, INGEST_CONFIG
from etl_db.csv_reader import RawCsvReader
from etl_db.ingestion import (
    DEFAULT_INGEST_TABLES,
    ContinueIngestionPipeline,
    apply_input_file_overrides,
    select_tables,
)
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest only empty or incomplete raw tables")
    parser.add_argument("--data-path", type=str, default=str(CSV_DATA_PATH), help="Directory with the CSV files")
    parser.add_argument("--schema", type=str, default=None, help="Target schema (default: processing schema)")
    parser.add_argument("--tables", nargs="+", default=None, help="Only these tables")
    parser.add_argument(
        "--batch-size", type=int, default=INGEST_CONFIG["continue_batch_size"], help="Rows per INSERT"
    )
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        specs = apply_input_file_overrides(DEFAULT_INGEST_TABLES, config.input_files)
        specs = select_tables(specs, args.tables)
        schema = args.schema or config.database.schemas.processing

        with open_database(config) as db:
            logger.info("✅ Connected to SQL Server")
            pipeline = ContinueIngestionPipeline(
                db, RawCsvReader(args.data_path), schema=schema, batch_size=args.batch_size
            )
            pipeline.run(specs)
        logger.info("Connection closed")
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
