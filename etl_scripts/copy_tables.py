"""
Copy raw tables from one schema to another.

Usage:
    etl-copy-tables                                   # [raw_data] -> [etl]
    etl-copy-tables --source poc_raw_data --target poc_etl
    etl-copy-tables --tables raw_premiums raw_fees
"""
import argparse
import sys

from etl_db.table_copy import DEFAULT_RAW_TABLES, copy_tables
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Copy raw_* tables between schemas")
    parser.add_argument("--source", type=str, default="raw_data", help="Source schema")
    parser.add_argument("--target", type=str, default="etl", help="Target schema")
    parser.add_argument("--tables", nargs="+", default=DEFAULT_RAW_TABLES, help="Tables to copy")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        with open_database(config) as db:
            results, _ = copy_tables(db, args.source, args.target, args.tables)

        failed = [r.table for r in results if r.status == "failed"]
        if failed:
            logger.warning(f"Tables with errors: {', '.join(failed)}")
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
