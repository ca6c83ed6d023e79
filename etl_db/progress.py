"""
Console progress reporting for pipeline runs.
"""
from datetime import datetime
from typing import Optional

from logging_config.logger import get_logger

logger = get_logger(__name__)


def format_number(num: float) -> str:
    """Number with thousands separators."""
    if isinstance(num, float) and not num.is_integer():
        return f"{num:,.1f}"
    return f"{int(num):,}"


def format_duration(seconds: float) -> str:
    """
    Human-readable duration.

    Examples:
        12.34  -> "12.3s"
        245    -> "4m 5s"
        3725   -> "1h 2m"
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.0f}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


class ProgressReporter:
    """Banner-style progress output for ETL runs."""

    def __init__(self):
        self.start_time: Optional[datetime] = None
        self.current_phase: Optional[str] = None
        self.current_step: Optional[str] = None

    def log_run_start(self, run_name: str, run_type: str, total_steps: int):
        self.start_time = datetime.now()
        logger.info("=" * 70)
        logger.info("ETL Pipeline Run Started")
        logger.info("=" * 70)
        logger.info(f"  Run Name:    {run_name}")
        logger.info(f"  Run Type:    {run_type}")
        logger.info(f"  Total Steps: {total_steps}")
        logger.info(f"  Started:     {self.start_time.isoformat(timespec='seconds')}")

    def log_phase(self, phase: str, phase_number: int, total_phases: int):
        self.current_phase = phase
        logger.info("-" * 70)
        logger.info(f"📦 Phase {phase_number}/{total_phases}: {phase}")
        logger.info("-" * 70)

    def log_step(self, step: str, current_step: int, total_steps: int):
        """Step header with overall percentage."""
        self.current_step = step
        percent = current_step / total_steps * 100 if total_steps else 100.0
        logger.info(f"  [{current_step}/{total_steps}] {step} ({percent:.1f}%)")

    def log_step_complete(self, step_name: str, duration: float, records_processed: Optional[int] = None):
        message = f"    ✅ {step_name} completed"
        if records_processed is not None:
            message += f" ({format_number(records_processed)} records)"
        message += f" in {format_duration(duration)}"
        logger.info(message)

    def log_step_failure(self, step_name: str, error: BaseException):
        logger.error(f"    ❌ {step_name} FAILED")
        logger.error(f"       Error: {error}")

    def log_phase_complete(self, phase: str, duration: float):
        logger.info(f'✅ Phase "{phase}" completed in {format_duration(duration)}')

    def log_run_complete(self, total_steps: int, total_duration: float):
        logger.info("=" * 70)
        logger.info("ETL Pipeline Run Completed")
        logger.info("=" * 70)
        logger.info(f"  Steps Completed: {total_steps}")
        logger.info(f"  Total Duration:  {format_duration(total_duration)}")
        if self.start_time:
            logger.info(f"  Started:         {self.start_time.isoformat(timespec='seconds')}")
            logger.info(f"  Completed:       {datetime.now().isoformat(timespec='seconds')}")

    def log_run_failure(self, error: BaseException, can_retry: bool):
        """Failure banner; can_retry tells the operator whether re-running may help."""
        logger.error("=" * 70)
        logger.error("ETL Pipeline Run FAILED")
        logger.error("=" * 70)
        logger.error(f"  Error: {error}")
        logger.error(f"  Can Retry: {'YES' if can_retry else 'NO'}")

    def log_warning(self, message: str):
        logger.warning(f"  ⚠️  {message}")

    def log_info(self, message: str):
        logger.info(f"  ℹ️  {message}")

    def log_debug(self, message: str, debug_mode: bool = False):
        if debug_mode:
            logger.info(f"  🐛 DEBUG: {message}")
