"""
List database schemas by prefix.

Usage:
    etl-list-schemas              # POC schemas
    etl-list-schemas --prefix ""  # everything
"""
import argparse
import sys

from etl_db.diagnostics import list_schemas
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List schemas whose name starts with a prefix")
    parser.add_argument("--prefix", type=str, default="poc", help="Schema name prefix")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        with open_database(config) as db:
            schemas = list_schemas(db, args.prefix)

        logger.info(f"Schemas starting with '{args.prefix}':")
        for name in schemas:
            logger.info(f"  ✅ {name}")
        if not schemas:
            logger.info("  ❌ No schemas found!")
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
