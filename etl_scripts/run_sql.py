"""
Run one or more SQL scripts with schema variable substitution.

Usage:
    etl-run-sql sql/schema/01-raw-tables.sql
    etl-run-sql --debug sql/transforms/01-brokers.sql
"""
import argparse
import sys

from etl_db.progress import format_duration
from etl_db.sql_executor import execute_sql_scripts
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute SQL scripts against the ETL database")
    parser.add_argument("scripts", nargs="+", help="SQL files, run in the given order")
    parser.add_argument("--debug", action="store_true", help="Substitute debug record limits")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        overrides = {"debug_mode": {"enabled": True}} if args.debug else None
        config = load_validated_config(args.config, overrides)

        def on_progress(script_name: str, index: int, total: int):
            logger.info(f"[{index}/{total}] {script_name}")

        with open_database(config) as db:
            results = execute_sql_scripts(db, args.scripts, config, on_progress=on_progress)

        for path, result in zip(args.scripts, results):
            logger.info(
                f"✅ {path}: {result.records_affected:,} records in {format_duration(result.duration)}"
            )
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
