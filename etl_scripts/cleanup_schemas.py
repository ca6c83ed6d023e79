"""
Remove schemas that are not part of the current database layout.

Usage:
    etl-cleanup-schemas            # Dry run (default)
    etl-cleanup-schemas --execute  # Actually drop objects and schemas
"""
import argparse
import sys

from etl_db.maintenance import SchemaCleanup
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drop unused schemas")
    parser.add_argument("--execute", action="store_true", help="Perform the cleanup (default: dry run)")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logger.info("=" * 70)
    logger.info("  Schema Cleanup")
    logger.info("=" * 70)
    if args.execute:
        logger.warning("⚠️  EXECUTE MODE - Changes WILL be made!")
    else:
        logger.info("🔍 DRY RUN MODE - No changes will be made")
        logger.info("   Use --execute flag to actually perform cleanup")

    try:
        config = load_validated_config(args.config)
        with open_database(config) as db:
            result = SchemaCleanup(db).run(execute=args.execute)

        if args.execute:
            logger.info(
                f"✅ Dropped {result.dropped_objects} object(s) and "
                f"{len(result.dropped_schemas)} schema(s), {len(result.errors)} error(s)"
            )
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
