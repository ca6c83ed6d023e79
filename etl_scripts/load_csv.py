"""
Load CSV extracts into raw tables, creating each table from its CSV header.

Usage:
    etl-load-csv              # Load all rows
    etl-load-csv --limit 100  # Test with 100 rows per file
"""
import argparse
import sys

from config.settings import CSV_DATA_PATH, INGEST_CONFIG
from etl_db.csv_loader import DEFAULT_CSV_MAPPINGS, CsvLoader
from etl_db.csv_reader import RawCsvReader
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create raw tables from CSV headers and bulk load them")
    parser.add_argument("--limit", type=int, default=0, help="Rows per file (0 = all)")
    parser.add_argument("--data-path", type=str, default=str(CSV_DATA_PATH), help="Directory with the CSV files")
    parser.add_argument("--schema", type=str, default=None, help="Target schema (default: processing schema)")
    parser.add_argument(
        "--batch-size", type=int, default=INGEST_CONFIG["bulk_batch_size"], help="Rows per bulk insert"
    )
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        schema = args.schema or config.database.schemas.processing

        with open_database(config) as db:
            logger.info("✅ Connected")
            loader = CsvLoader(
                db,
                RawCsvReader(args.data_path),
                schema=schema,
                batch_size=args.batch_size,
                row_limit=args.limit,
            )
            summary = loader.run(DEFAULT_CSV_MAPPINGS)
            if not summary.empty:
                loader.verify_counts(summary)

        logger.info("✅ CSV LOAD COMPLETED")
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
