"""
Staging tables ordered by record count.

Usage:
    etl-check-staging-counts
    etl-check-staging-counts --schema poc_etl --prefix input_
"""
import argparse
import sys

from etl_db.diagnostics import TOP_N, prefixed_table_counts, staging_report
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Record counts of staging tables")
    parser.add_argument("--schema", type=str, default=None, help="Schema (default: processing schema)")
    parser.add_argument("--prefix", type=str, default="stg_", help="Table name prefix")
    parser.add_argument("--top", type=int, default=TOP_N, help="Number of tables to list")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        schema = args.schema or config.database.schemas.processing
        with open_database(config) as db:
            counts = prefixed_table_counts(db, schema, args.prefix)

        for line in staging_report(counts, schema, args.top):
            logger.info(line)
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
