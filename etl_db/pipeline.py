"""
ETL pipeline runner.

Runs the SQL scripts of each phase in order:

    1. Schema Setup          sql/schema/*.sql
    2. Data Ingest           sql/ingest/*.sql
    3. Data Transforms       sql/transforms/*.sql
    4. Export to Production  sql/export/*.sql

Scripts within a phase run in file-name order. The first failing script
stops the run.
"""
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, model_validator

from config.etl_config import ETLConfig
from config.settings import SQL_DIR
from etl_db.database import ETLDatabase
from etl_db.errors import can_resume_after_error
from etl_db.progress import ProgressReporter
from etl_db.sql_executor import execute_sql_script
from logging_config.logger import get_logger

logger = get_logger(__name__)


class Phase(BaseModel):
    name: str
    directory: str
    option: str
    pausable: bool = False


PHASES = [
    Phase(name="Schema Setup", directory="schema", option="skip_schema"),
    Phase(name="Data Ingest", directory="ingest", option="skip_ingest", pausable=True),
    Phase(name="Data Transforms", directory="transforms", option="skip_transform", pausable=True),
    Phase(name="Export to Production", directory="export", option="skip_export"),
]

PAUSE_ANSWERS = {"n", "no", "q", "quit"}


class PipelineOptions(BaseModel):
    """Command-line switches of the pipeline runner."""
    skip_schema: bool = False
    skip_ingest: bool = False
    skip_transform: bool = False
    skip_export: bool = False
    transforms_only: bool = False
    export_only: bool = False
    debug: bool = False
    step_by_step: bool = False

    @model_validator(mode="after")
    def apply_composite_flags(self) -> "PipelineOptions":
        if self.transforms_only:
            self.skip_ingest = True
            self.skip_export = True
        if self.export_only:
            self.skip_ingest = True
            self.skip_transform = True
        return self

    @property
    def run_type(self) -> str:
        if self.transforms_only:
            return "transform-only"
        if self.export_only:
            return "export-only"
        return "full"


class PipelineStep(BaseModel):
    phase: str
    script: Path


class PipelineResult(BaseModel):
    run_name: str
    completed_steps: int
    total_steps: int
    paused: bool = False
    duration: float


class PipelineRunner:
    """Sequential runner for the SQL phases."""

    def __init__(
        self,
        db: ETLDatabase,
        config: ETLConfig,
        options: Optional[PipelineOptions] = None,
        sql_dir: Path = SQL_DIR,
        prompt: Callable[[str], str] = input,
        reporter: Optional[ProgressReporter] = None
    ):
        """
        Initialize runner.

        Args:
            db: Connected database handler
            config: ETL configuration
            options: Phase selection and modes
            sql_dir: Root directory of the phase script folders
            prompt: Reads the operator's answer in step-by-step mode
            reporter: Progress output
        """
        self.db = db
        self.config = config
        self.options = options or PipelineOptions()
        self.sql_dir = Path(sql_dir)
        self.prompt = prompt
        self.reporter = reporter or ProgressReporter()

    def phase_scripts(self, phase: Phase) -> List[Path]:
        """Sorted *.sql files of a phase directory."""
        directory = self.sql_dir / phase.directory
        if not directory.is_dir():
            logger.warning(f"SQL directory not found for {phase.name}: {directory}")
            return []
        return sorted(directory.glob("*.sql"))

    def active_phases(self) -> List[Phase]:
        return [phase for phase in PHASES if not getattr(self.options, phase.option)]

    def plan(self) -> List[PipelineStep]:
        """All steps the run will execute, in order."""
        return [
            PipelineStep(phase=phase.name, script=script)
            for phase in self.active_phases()
            for script in self.phase_scripts(phase)
        ]

    def ask_to_continue(self, current_step: int, total_steps: int, script_name: str) -> bool:
        """Ask the operator whether to go on; False pauses the run."""
        logger.info("=" * 60)
        logger.info(f"  Step {current_step}/{total_steps} completed: {script_name}")
        logger.info("=" * 60)
        try:
            answer = self.prompt("Continue to next step? (y/n/q to quit): ")
        except EOFError:
            return False
        return answer.strip().lower() not in PAUSE_ANSWERS

    def run(self) -> PipelineResult:
        """
        Execute the pipeline.

        Returns:
            PipelineResult

        Raises:
            SQLScriptError: When a script fails
        """
        steps = self.plan()
        total_steps = len(steps)
        run_type = self.options.run_type
        run_name = f"ETL-{run_type}-{datetime.now().strftime('%Y-%m-%dT%H-%M-%S')}"
        debug_mode = self.config.debug_mode.enabled

        self.reporter.log_run_start(run_name, run_type, total_steps)
        if self.options.step_by_step:
            self.reporter.log_info("STEP-BY-STEP MODE: pausing after each ingest/transform step")
        limits = ", ".join(f"{k}={v:,}" for k, v in self.config.debug_mode.max_records.items())
        self.reporter.log_debug(f"Record limits: {limits}", debug_mode)
        if not steps:
            self.reporter.log_warning(f"No SQL scripts found under {self.sql_dir}")

        start_time = time.time()
        current_step = 0

        for phase_number, phase in enumerate(PHASES, start=1):
            if getattr(self.options, phase.option):
                continue

            phase_start = time.time()
            self.reporter.log_phase(phase.name, phase_number, len(PHASES))

            for step in (s for s in steps if s.phase == phase.name):
                current_step += 1
                script_name = step.script.name
                self.reporter.log_step(script_name, current_step, total_steps)

                result = execute_sql_script(self.db, step.script, self.config, debug_mode=debug_mode)

                if not result.success:
                    self.reporter.log_step_failure(script_name, result.error)
                    self.reporter.log_run_failure(result.error, can_resume_after_error(result.error))
                    raise result.error

                self.reporter.log_step_complete(script_name, result.duration, result.records_affected)

                if (
                    self.options.step_by_step
                    and phase.pausable
                    and not self.ask_to_continue(current_step, total_steps, script_name)
                ):
                    logger.info("⏸️  Pipeline paused by user")
                    return PipelineResult(
                        run_name=run_name,
                        completed_steps=current_step,
                        total_steps=total_steps,
                        paused=True,
                        duration=time.time() - start_time,
                    )

            self.reporter.log_phase_complete(phase.name, time.time() - phase_start)

        duration = time.time() - start_time
        self.reporter.log_run_complete(current_step, duration)
        return PipelineResult(
            run_name=run_name,
            completed_steps=current_step,
            total_steps=total_steps,
            duration=duration,
        )
