"""
Fix far-future expiration dates (past 2050-01-01) in BrokerLicenses,
BrokerAppointments and BrokerEOInsurances.

Usage:
    etl-fix-grace-period-dates            # Dry run: analyze only
    etl-fix-grace-period-dates --execute  # Back up and fix
"""
import argparse
import sys

from etl_db.maintenance import GracePeriodDateFix
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Correct far-future expiration dates")
    parser.add_argument("--execute", action="store_true", help="Apply the fix (default: dry run)")
    parser.add_argument("--schema", type=str, default=None, help="Schema (default: production schema)")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_validated_config(args.config)
        schema = args.schema or config.database.schemas.production

        with open_database(config) as db:
            fix = GracePeriodDateFix(db, schema=schema)
            analysis = fix.analyze()

            if not args.execute:
                logger.info("🔍 DRY RUN MODE - No changes were made")
                logger.info("   Use --execute to apply the fix")
                return 0

            updated = fix.apply(analysis)
            for table, count in updated.items():
                logger.info(f"{table}: {count} rows updated")

            logger.info("=" * 60)
            logger.info("VERIFICATION")
            logger.info("=" * 60)
            fix.analyze()

        logger.info("✅ GRACE PERIOD DATE FIX COMPLETED")
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
