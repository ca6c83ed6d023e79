"""
Quick row-count check of the raw, staging and production tables.

Usage:
    etl-check-counts
"""
import argparse
import sys

from etl_db.diagnostics import count_groups, render_table
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Row counts of the raw, staging and production tables")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        with open_database(config) as db:
            for title, counts in count_groups(db).items():
                logger.info(f"=== {title} ===")
                for line in render_table(counts).splitlines():
                    logger.info(line)
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
