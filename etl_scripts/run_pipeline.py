"""
Run the ETL pipeline.

Usage:
    etl-run-pipeline [options]

Options:
    --debug              Enable debug mode with record limits
    --step-by-step       Pause after each ingest/transform step
    --skip-schema        Skip schema setup
    --skip-ingest        Skip data ingestion
    --skip-transform     Skip transforms
    --skip-export        Skip export to production
    --transforms-only    Run transforms only (skip ingest and export)
    --export-only        Run export only (skip ingest and transforms)
    --config PATH        appsettings.json location
"""
import argparse
import sys

from config.etl_config import log_config
from config.settings import SQL_DIR
from etl_db.pipeline import PipelineOptions, PipelineRunner
from etl_scripts.common import add_config_argument, load_validated_config, open_database, report_failure
from logging_config.logger import get_logger

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the ETL pipeline phases")
    parser.add_argument("--debug", action="store_true", help="Limit records processed")
    parser.add_argument("--step-by-step", action="store_true", help="Pause for verification between steps")
    parser.add_argument("--skip-schema", action="store_true", help="Skip schema setup")
    parser.add_argument("--skip-ingest", action="store_true", help="Skip data ingestion")
    parser.add_argument("--skip-transform", action="store_true", help="Skip transforms")
    parser.add_argument("--skip-export", action="store_true", help="Skip export to production")
    parser.add_argument("--transforms-only", action="store_true", help="Run transforms only")
    parser.add_argument("--export-only", action="store_true", help="Run export only")
    parser.add_argument("--sql-dir", type=str, default=str(SQL_DIR), help="Root of the phase script folders")
    add_config_argument(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    options = PipelineOptions(
        skip_schema=args.skip_schema,
        skip_ingest=args.skip_ingest,
        skip_transform=args.skip_transform,
        skip_export=args.skip_export,
        transforms_only=args.transforms_only,
        export_only=args.export_only,
        debug=args.debug,
        step_by_step=args.step_by_step,
    )

    try:
        overrides = {"debug_mode": {"enabled": True}} if options.debug else None
        config = load_validated_config(args.config, overrides)
        log_config(config)

        with open_database(config) as db:
            result = PipelineRunner(db, config, options, sql_dir=args.sql_dir).run()

        if result.paused:
            logger.info(
                f"Run paused after step {result.completed_steps}/{result.total_steps}. "
                "Re-run with --skip-* flags to continue from a later phase."
            )
    except Exception as e:
        return report_failure(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
