"""
Error classification and retry logic for ETL database work.

Classifies driver errors into transient (worth retrying) and permanent
failures, and wraps callables in an exponential backoff loop.
"""
import re
import time
import random
import traceback
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from logging_config.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ETLError(Exception):
    """Base class for errors raised by the ETL tooling."""


class ConfigurationError(ETLError):
    """Configuration is missing or invalid."""


class SQLScriptError(ETLError):
    """A SQL script (or one of its batches) failed to execute."""

    def __init__(self, script_name: str, message: str, batch_number: Optional[int] = None):
        self.script_name = script_name
        self.batch_number = batch_number
        location = f" (batch {batch_number})" if batch_number is not None else ""
        super().__init__(f"{script_name}{location}: {message}")


class ErrorCategory(str, Enum):
    """Error categories used to decide on retries."""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    DEADLOCK = "deadlock"
    CONSTRAINT = "constraint"
    SYNTAX = "syntax"
    UNKNOWN = "unknown"


class ErrorClassification:
    """Result of classify_error()."""

    def __init__(
        self,
        is_transient: bool,
        is_recoverable: bool,
        category: ErrorCategory,
        message: str,
        suggestion: str
    ):
        self.is_transient = is_transient
        self.is_recoverable = is_recoverable
        self.category = category
        self.message = message
        self.suggestion = suggestion

    def __repr__(self) -> str:
        return (
            f"ErrorClassification(category={self.category.value}, "
            f"transient={self.is_transient}, recoverable={self.is_recoverable})"
        )


# SQL Server native error numbers
CONNECTION_CODES = {"ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "ECONNREFUSED"}
TIMEOUT_CODES = {-2, "ETIMEOUT"}
DEADLOCK_CODES = {1205}
CONSTRAINT_CODES = {547, 2627, 2601}
SYNTAX_CODES = {102, 156, 208}

# pyodbc messages end with "... (208) (SQLExecDirectW)"
_NATIVE_NUMBER_RE = re.compile(r"\((-?\d+)\)\s*\(SQL\w+\)")


def _root_error(error: BaseException) -> BaseException:
    """Unwrap SQLScriptError / SQLAlchemy wrappers down to the driver error."""
    seen = set()
    current = error
    while id(current) not in seen:
        seen.add(id(current))
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException):
            current = orig
            continue
        if isinstance(current, ETLError) and current.__cause__ is not None:
            current = current.__cause__
            continue
        break
    return current


def _error_code(error: BaseException) -> Any:
    """Best-effort extraction of a driver/native error code."""
    for attr in ("number", "code", "errno"):
        value = getattr(error, attr, None)
        if value is not None:
            return value

    match = _NATIVE_NUMBER_RE.search(str(error))
    if match:
        return int(match.group(1))
    return None


def _sqlstate(error: BaseException) -> str:
    """SQLSTATE from a pyodbc error (first arg), or empty string."""
    args = getattr(error, "args", ())
    if args and isinstance(args[0], str) and re.fullmatch(r"[0-9A-Z]{5}", args[0]):
        return args[0]
    return ""


def classify_error(error: BaseException) -> ErrorClassification:
    """
    Classify an error to determine if it's transient and recoverable.

    Args:
        error: Exception raised by the driver, SQLAlchemy or ETL code

    Returns:
        ErrorClassification
    """
    root = _root_error(error)
    message = str(root) or str(error)
    code = _error_code(root)
    sqlstate = _sqlstate(root)

    if (
        code in CONNECTION_CODES
        or isinstance(root, ConnectionError)
        or sqlstate.startswith("08")
        or "Connection lost" in message
        or "socket hang up" in message
    ):
        return ErrorClassification(
            is_transient=True,
            is_recoverable=True,
            category=ErrorCategory.CONNECTION,
            message="Database connection error",
            suggestion="Retrying with exponential backoff"
        )

    if (
        code in TIMEOUT_CODES
        or isinstance(root, TimeoutError)
        or sqlstate in ("HYT00", "HYT01")
        or "timeout" in message.lower()
    ):
        return ErrorClassification(
            is_transient=True,
            is_recoverable=True,
            category=ErrorCategory.TIMEOUT,
            message="Query timeout",
            suggestion="Consider increasing the request timeout or optimizing the query"
        )

    if code in DEADLOCK_CODES or "deadlock" in message.lower():
        return ErrorClassification(
            is_transient=True,
            is_recoverable=True,
            category=ErrorCategory.DEADLOCK,
            message="Transaction deadlock detected",
            suggestion="Retrying transaction"
        )

    if (
        code in CONSTRAINT_CODES
        or "FOREIGN KEY constraint" in message
        or "PRIMARY KEY constraint" in message
        or "UNIQUE constraint" in message
    ):
        return ErrorClassification(
            is_transient=False,
            is_recoverable=True,
            category=ErrorCategory.CONSTRAINT,
            message="Database constraint violation",
            suggestion="Check data integrity and fix source data"
        )

    if (
        code in SYNTAX_CODES
        or "Incorrect syntax" in message
        or "Invalid object name" in message
        or "no such table" in message
        or "syntax error" in message
    ):
        return ErrorClassification(
            is_transient=False,
            is_recoverable=False,
            category=ErrorCategory.SYNTAX,
            message="SQL syntax or schema error",
            suggestion="Fix SQL script or verify database schema"
        )

    return ErrorClassification(
        is_transient=False,
        is_recoverable=True,
        category=ErrorCategory.UNKNOWN,
        message=message,
        suggestion="Review error details and logs"
    )


def is_missing_object_error(error: BaseException) -> bool:
    """True when the error means a table/schema does not exist."""
    message = str(_root_error(error))
    return (
        _error_code(_root_error(error)) == 208
        or "Invalid object name" in message
        or "no such table" in message
    )


def retry_with_backoff(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Optional[Callable[[int, BaseException], None]] = None
) -> T:
    """
    Call fn, retrying transient failures with exponential backoff and jitter.

    Args:
        fn: Zero-argument callable
        max_retries: Total number of attempts
        base_delay: Delay before the second attempt (seconds)
        max_delay: Upper bound for the exponential part of the delay
        on_retry: Called with (attempt, error) before sleeping

    Returns:
        Whatever fn returns

    Raises:
        The last error, or the first non-transient one
    """
    for attempt in range(1, max_retries + 1):
        try:
            return fn()
        except Exception as e:
            classification = classify_error(e)

            if not classification.is_transient or attempt == max_retries:
                raise

            exponential_delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            delay = exponential_delay + random.random() * 0.3 * exponential_delay

            if on_retry:
                on_retry(attempt, e)

            logger.warning(f"{classification.message} (attempt {attempt}/{max_retries})")
            logger.warning(f"  {classification.suggestion}")
            logger.warning(f"  Retrying in {delay:.1f}s...")

            time.sleep(delay)

    raise ETLError("retry_with_backoff called with max_retries < 1")


def format_error(error: BaseException) -> str:
    """Format an error with its classification for console output."""
    classification = classify_error(error)
    root = _root_error(error)

    lines = [
        "",
        "=" * 70,
        "ERROR DETAILS",
        "=" * 70,
        f"  Category:    {classification.category.value}",
        f"  Transient:   {'Yes' if classification.is_transient else 'No'}",
        f"  Recoverable: {'Yes' if classification.is_recoverable else 'No'}",
        f"  Message:     {classification.message}",
        f"  Suggestion:  {classification.suggestion}",
    ]

    code = _error_code(root)
    if code is not None:
        lines.append(f"  Error Code:  {code}")

    if isinstance(error, SQLScriptError):
        lines.append(f"  Script:      {error.script_name}")
        if error.batch_number is not None:
            lines.append(f"  Batch:       {error.batch_number}")

    lines.append(f"  Error:       {error}")

    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    if stack.strip():
        lines.append("")
        lines.append("  Stack Trace:")
        lines.extend(f"  {line}" for line in stack.rstrip().splitlines())

    return "\n".join(lines)


def can_resume_after_error(error: BaseException) -> bool:
    """A run can be re-attempted unless the error is a syntax/schema error."""
    return classify_error(error).is_recoverable
