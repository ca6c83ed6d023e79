"""
Tests for continue ingestion.
"""

import pytest
from unittest.mock import patch

from etl_db.csv_reader import RawCsvReader
from etl_db.ingestion import (
    ContinueIngestionPipeline,
    IngestTableSpec,
    DEFAULT_INGEST_TABLES,
    apply_input_file_overrides,
    select_tables,
)
from conftest import create_table, write_csv

COLUMNS = ["Company", "Group Id", "Premium"]


@pytest.fixture
def pipeline(db, data_dir):
    """Pipeline with small batches against the test database."""
    return ContinueIngestionPipeline(db, RawCsvReader(data_dir), schema="etl", batch_size=2, progress_every=3)


@pytest.fixture
def premiums_table(db):
    create_table(db, "etl", "raw_premiums", COLUMNS)


def premium_rows(n, start=0):
    return {
        "Company": ["APL"] * n,
        "Group Id": [f"G{start + i}" for i in range(n)],
        "Premium": [str(100 + i) for i in range(n)],
    }


# ============================================================================
# TABLE SELECTION TESTS
# ============================================================================

class TestTableSelection:
    """Test overrides and table filters."""

    def test_defaults(self):
        """Test the default table list covers the nine raw tables."""
        tables = [spec.table for spec in DEFAULT_INGEST_TABLES]
        assert len(tables) == 9
        assert "raw_premiums" in tables
        commissions = next(s for s in DEFAULT_INGEST_TABLES if s.table == "raw_commissions_detail")
        assert len(commissions.files) == 4

    def test_input_file_overrides(self):
        """Test configured input files replace defaults without mutating them."""
        specs = apply_input_file_overrides(
            DEFAULT_INGEST_TABLES,
            {"premiums": "premiums-2026.csv", "commissionsDetail": "a.csv, b.csv", "unknown": "x.csv"},
        )
        by_table = {spec.table: spec for spec in specs}

        assert by_table["raw_premiums"].files == ["premiums-2026.csv"]
        assert by_table["raw_commissions_detail"].files == ["a.csv", "b.csv"]
        assert by_table["raw_licenses"].files == ["BrokerLicenseExtract_20260107.csv"]
        assert DEFAULT_INGEST_TABLES[0].files == ["premiums.csv"]

    def test_select_tables(self):
        """Test only named tables are kept, in default order."""
        specs = select_tables(DEFAULT_INGEST_TABLES, ["raw_perf_groups", "raw_premiums"])
        assert [spec.table for spec in specs] == ["raw_premiums", "raw_perf_groups"]

    def test_select_all(self):
        """Test None selects every table."""
        assert len(select_tables(DEFAULT_INGEST_TABLES, None)) == 9

    def test_select_unknown(self):
        """Test unknown names raise ValueError."""
        with pytest.raises(ValueError, match="raw_nope"):
            select_tables(DEFAULT_INGEST_TABLES, ["raw_nope"])


# ============================================================================
# INGEST TESTS
# ============================================================================

class TestIngestTable:
    """Test per-table ingestion decisions."""

    def test_loads_empty_table(self, pipeline, db, data_dir, premiums_table):
        """Test an empty table is loaded from its file."""
        write_csv(data_dir / "premiums.csv", premium_rows(5))
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=5)

        assert pipeline.ingest_table(spec) == 5
        assert db.row_count("etl", "raw_premiums") == 5

        row = db.fetch_all('SELECT * FROM etl.raw_premiums WHERE "Group Id" = :g', {"g": "G0"})[0]
        assert row == {"Company": "APL", "Group Id": "G0", "Premium": "100"}

    def test_skips_complete_table(self, pipeline, db, data_dir):
        """Test a table at or above its minimum is left alone."""
        create_table(db, "etl", "raw_premiums", COLUMNS, [("APL", "G1", "1"), ("APL", "G2", "2")])
        write_csv(data_dir / "premiums.csv", premium_rows(5))
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=2)

        assert pipeline.ingest_table(spec) == 0
        assert db.row_count("etl", "raw_premiums") == 2

    def test_truncates_incomplete_table(self, pipeline, db, data_dir):
        """Test a partially loaded table is truncated then reloaded."""
        create_table(db, "etl", "raw_premiums", COLUMNS, [("OLD", "X", "0")])
        write_csv(data_dir / "premiums.csv", premium_rows(4))
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=10)

        assert pipeline.ingest_table(spec) == 4
        assert db.row_count("etl", "raw_premiums") == 4
        assert db.fetch_scalar("SELECT COUNT(*) FROM etl.raw_premiums WHERE Company = 'OLD'") == 0

    def test_multiple_files_appended(self, pipeline, db, data_dir, premiums_table):
        """Test every listed file is appended to the same table."""
        write_csv(data_dir / "a.csv", premium_rows(3))
        write_csv(data_dir / "b.csv", premium_rows(2, start=3))
        spec = IngestTableSpec(table="raw_premiums", files=["a.csv", "b.csv"], min_rows=100)

        assert pipeline.ingest_table(spec) == 5
        assert db.row_count("etl", "raw_premiums") == 5

    def test_missing_file_skipped(self, pipeline, db, data_dir, premiums_table):
        """Test missing files are logged and skipped."""
        write_csv(data_dir / "b.csv", premium_rows(2))
        spec = IngestTableSpec(table="raw_premiums", files=["missing.csv", "b.csv"], min_rows=100)

        with patch("etl_db.ingestion.logger") as mock_logger:
            assert pipeline.ingest_table(spec) == 2

        errors = [c.args[0] for c in mock_logger.error.call_args_list]
        assert any("File not found: missing.csv" in message for message in errors)

    def test_ragged_rows_loaded(self, pipeline, db, data_dir, premiums_table):
        """Test a row with an extra field is loaded instead of failing the file."""
        (data_dir / "premiums.csv").write_text(
            "Company,Group Id,Premium\nAPL,G0,100\nAPL,G1,101,stray\nAPL,G2,102\n"
        )
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=100)

        assert pipeline.ingest_table(spec) == 3
        assert db.fetch_scalar('SELECT Premium FROM etl.raw_premiums WHERE "Group Id" = :g', {"g": "G1"}) == "101"

    def test_empty_file(self, pipeline, db, data_dir, premiums_table):
        """Test a header-only file inserts nothing."""
        (data_dir / "premiums.csv").write_text("Company,Group Id,Premium\n")
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=1)

        assert pipeline.ingest_table(spec) == 0
        assert db.row_count("etl", "raw_premiums") == 0

    def test_batch_failure_reraised(self, pipeline, db, data_dir, premiums_table):
        """Test a failed batch rolls back and propagates, keeping committed batches."""
        write_csv(data_dir / "premiums.csv", premium_rows(5))
        spec = IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=100)
        original = db.insert_rows
        calls = []

        def failing_insert(*args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("insert failed")
            return original(*args, **kwargs)

        with patch.object(db, "insert_rows", side_effect=failing_insert):
            with pytest.raises(RuntimeError, match="insert failed"):
                pipeline.ingest_table(spec)

        assert db.row_count("etl", "raw_premiums") == 2


# ============================================================================
# RUN TESTS
# ============================================================================

class TestRun:
    """Test the full continue-ingestion run."""

    def test_run_returns_final_counts(self, pipeline, db, data_dir):
        """Test run ingests each table and reports counts."""
        create_table(db, "etl", "raw_premiums", COLUMNS)
        create_table(db, "etl", "raw_perf_groups", ["GroupNum", "Name"], [("1", "a"), ("2", "b")])
        write_csv(data_dir / "premiums.csv", premium_rows(3))
        write_csv(data_dir / "perf-group.csv", {"GroupNum": ["9"], "Name": ["z"]})

        specs = [
            IngestTableSpec(table="raw_premiums", files=["premiums.csv"], min_rows=3),
            IngestTableSpec(table="raw_perf_groups", files=["perf-group.csv"], min_rows=2),
        ]

        assert pipeline.run(specs) == {"raw_premiums": 3, "raw_perf_groups": 2}
