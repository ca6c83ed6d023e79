"""
CSV reader for the client data extracts.
"""
import re
import pandas as pd
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from logging_config.logger import get_logger

logger = get_logger(__name__)

_INVALID_COLUMN_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_column_name(name: str, index: int) -> str:
    """
    Make a CSV header usable as a SQL Server column name.

    Args:
        name: Raw header value
        index: Position of the column (used when the header is blank)

    Returns:
        Sanitized column name

    Examples:
        "\\ufeffGroup Id" -> "Group_Id"
        "2024 Rate"      -> "Col_2024_Rate"
        ""               -> "Column3"
    """
    cleaned = _INVALID_COLUMN_CHARS.sub("_", name.replace("\ufeff", "").strip())
    if cleaned[:1].isdigit():
        cleaned = "Col_" + cleaned
    return cleaned or f"Column{index}"


def _clean_value(value: Any) -> Optional[Any]:
    """Empty strings and missing fields become NULL."""
    if value is None or value == "":
        return None
    if not isinstance(value, str) and pd.isna(value):
        return None
    return value


class RawCsvReader:
    """Read CSV extracts from the raw data directory."""

    def __init__(self, data_dir: Path):
        """
        Initialize reader.

        Args:
            data_dir: Directory containing the CSV extracts
        """
        self.data_dir = Path(data_dir)
        logger.debug(f"CSV data directory: {self.data_dir}")

    def path(self, file_name: str) -> Path:
        return self.data_dir / file_name

    def exists(self, file_name: str) -> bool:
        return self.path(file_name).is_file()

    def resolve(self, file_name: str) -> Path:
        """Path of an existing file; raises FileNotFoundError otherwise."""
        file_path = self.path(file_name)
        if not file_path.is_file():
            raise FileNotFoundError(f"CSV file not found: {file_path}")
        return file_path

    def file_size_mb(self, file_name: str) -> float:
        return self.resolve(file_name).stat().st_size / (1024 * 1024)

    def find_matching_files(self, pattern: str) -> List[str]:
        """
        Expand a file pattern.

        Plain names are returned as-is (existence is checked on load).
        Patterns with '*' match on prefix and suffix, skip '-old' files
        and are sorted by name.
        """
        if "*" not in pattern:
            return [pattern]

        prefix, _, suffix = pattern.partition("*")
        suffix = suffix.replace("*", "")

        if not self.data_dir.is_dir():
            raise FileNotFoundError(f"CSV data directory not found: {self.data_dir}")

        return sorted(
            entry.name
            for entry in self.data_dir.iterdir()
            if entry.is_file()
            and entry.name.startswith(prefix)
            and entry.name.endswith(suffix)
            and "-old" not in entry.name
        )

    def read_header(self, file_name: str) -> List[str]:
        """
        Read the header row.

        Returns:
            Column names as they appear in the file (BOM removed, blank
            names kept as ""), or [] for an empty file
        """
        file_path = self.resolve(file_name)
        try:
            df = pd.read_csv(
                file_path,
                header=None,
                nrows=1,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                engine="python",
            )
        except pd.errors.EmptyDataError:
            return []
        if df.empty:
            return []
        return [str(name) for name in df.iloc[0]]

    def read_sanitized_columns(self, file_name: str) -> List[str]:
        """Header row converted to SQL-safe column names."""
        return [sanitize_column_name(name, i) for i, name in enumerate(self.read_header(file_name))]

    def iter_batches(
        self,
        file_name: str,
        batch_size: int,
        limit: Optional[int] = None,
        sanitize: bool = False
    ) -> Iterator[List[Dict[str, Any]]]:
        """
        Stream a CSV file as batches of row dictionaries.

        Rows may be ragged: fields past the header width are dropped and
        missing trailing fields become None.

        Args:
            file_name: File inside the data directory
            batch_size: Rows per batch
            limit: Stop after this many rows (None or 0 = no limit)
            sanitize: Key rows by sanitized column names

        Yields:
            Lists of at most batch_size dicts; empty values are None
        """
        header = self.read_header(file_name)
        if not header:
            logger.debug(f"{file_name} has no header row")
            return

        keys = [sanitize_column_name(name, i) for i, name in enumerate(header)] if sanitize else header
        positions = list(range(len(header)))

        # Columns are addressed by position so blank or repeated header
        # names are not renamed by pandas
        chunks = pd.read_csv(
            self.resolve(file_name),
            header=0,
            names=positions,
            usecols=positions,
            index_col=False,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
            engine="python",
            chunksize=batch_size,
        )

        remaining = limit or None

        with chunks:
            for chunk in chunks:
                if remaining is not None:
                    chunk = chunk.iloc[:remaining]
                    remaining -= len(chunk)
                if chunk.empty:
                    if remaining == 0:
                        break
                    continue
                yield [
                    {key: _clean_value(value) for key, value in zip(keys, row)}
                    for row in chunk.itertuples(index=False, name=None)
                ]
                if remaining == 0:
                    break
