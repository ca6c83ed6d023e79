"""
Tests for the command-line entry points.

Each script is run through main() against the test database; config
loading and the connection factory are patched.
"""

import pytest
from unittest.mock import patch

from etl_db.database import ETLDatabase
from etl_db.errors import ConfigurationError
from etl_scripts import (
    check_counts,
    check_staging_counts,
    cleanup_schemas,
    continue_ingest,
    copy_tables,
    fix_grace_period_dates,
    list_schemas,
    load_csv,
    run_pipeline,
    run_sql,
)
from etl_scripts.common import load_validated_config
from conftest import create_table, write_csv


@pytest.fixture
def patch_script(engine, etl_config):
    """Point a script module at the test database."""
    patchers = []

    def apply(module):
        for target, value in [
            ("load_validated_config", lambda *args, **kwargs: etl_config),
            ("open_database", lambda config: ETLDatabase(engine=engine)),
        ]:
            patcher = patch(f"{module.__name__}.{target}", side_effect=value)
            patcher.start()
            patchers.append(patcher)

    yield apply
    for patcher in patchers:
        patcher.stop()


# ============================================================================
# CONFIG TESTS
# ============================================================================

class TestLoadValidatedConfig:
    """Test the shared config loader."""

    def test_missing_connection_raises(self, tmp_path, monkeypatch):
        """Test an incomplete configuration raises ConfigurationError."""
        for name in ["SQLSERVER", "SQLSERVER_HOST", "DATABASE_URL"]:
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError, match="connection string is required"):
            load_validated_config(str(tmp_path / "missing.json"))

    def test_config_error_exit_code(self, tmp_path, monkeypatch):
        """Test scripts exit with 1 when configuration is invalid."""
        for name in ["SQLSERVER", "SQLSERVER_HOST", "DATABASE_URL"]:
            monkeypatch.delenv(name, raising=False)

        assert check_counts.main(["--config", str(tmp_path / "missing.json")]) == 1


# ============================================================================
# INGESTION SCRIPTS
# ============================================================================

class TestIngestionScripts:
    """Test continue-ingest, load-csv and copy-tables."""

    def test_continue_ingest(self, patch_script, db, data_dir):
        """Test selected tables are ingested."""
        patch_script(continue_ingest)
        create_table(db, "etl", "raw_perf_groups", ["GroupNum"])
        write_csv(data_dir / "perf-group.csv", {"GroupNum": ["1", "2", "3"]})

        exit_code = continue_ingest.main(["--data-path", str(data_dir), "--tables", "raw_perf_groups"])

        assert exit_code == 0
        assert db.row_count("etl", "raw_perf_groups") == 3

    def test_continue_ingest_unknown_table(self, patch_script, data_dir):
        """Test an unknown table name fails the run."""
        patch_script(continue_ingest)
        assert continue_ingest.main(["--data-path", str(data_dir), "--tables", "raw_nope"]) == 1

    def test_load_csv(self, patch_script, db, data_dir):
        """Test available files are loaded with a row limit."""
        patch_script(load_csv)
        write_csv(data_dir / "premiums.csv", {"Group Id": [str(i) for i in range(5)]})

        exit_code = load_csv.main(["--data-path", str(data_dir), "--limit", "2"])

        assert exit_code == 0
        assert db.row_count("etl", "raw_premiums") == 2

    def test_copy_tables(self, patch_script, db):
        """Test raw tables are copied between schemas."""
        patch_script(copy_tables)
        create_table(db, "raw_data", "raw_fees", ["Fee"], [("1",), ("2",)])
        create_table(db, "etl", "raw_fees", ["Fee"])

        assert copy_tables.main(["--tables", "raw_fees", "raw_licenses"]) == 0
        assert db.row_count("etl", "raw_fees") == 2


# ============================================================================
# DIAGNOSTIC SCRIPTS
# ============================================================================

class TestDiagnosticScripts:
    """Test read-only reports."""

    def test_check_counts(self, patch_script, db):
        """Test the count report runs with missing tables."""
        patch_script(check_counts)
        create_table(db, "etl", "raw_premiums", ["a"], [("1",)])
        assert check_counts.main([]) == 0

    def test_check_staging_counts(self, patch_script, db):
        """Test the staging report lists prefixed tables."""
        patch_script(check_staging_counts)
        create_table(db, "etl", "stg_brokers", ["a"], [("1",)])

        with patch("etl_scripts.check_staging_counts.logger") as mock_logger:
            assert check_staging_counts.main(["--top", "5"]) == 0

        lines = [c.args[0] for c in mock_logger.info.call_args_list]
        assert "Total: 1 tables, 1 records" in lines

    def test_list_schemas(self, patch_script):
        """Test schemas are listed by prefix."""
        patch_script(list_schemas)

        with patch("etl_scripts.list_schemas.logger") as mock_logger:
            assert list_schemas.main(["--prefix", "raw"]) == 0

        lines = [c.args[0] for c in mock_logger.info.call_args_list]
        assert "  ✅ raw_data" in lines


# ============================================================================
# SQL SCRIPTS
# ============================================================================

class TestSqlScripts:
    """Test run-sql and run-pipeline."""

    def test_run_sql(self, patch_script, db, tmp_path):
        """Test scripts run in order."""
        patch_script(run_sql)
        first = tmp_path / "01.sql"
        first.write_text("CREATE TABLE $(ETL_SCHEMA).stg_x (a TEXT)\nGO\n")
        second = tmp_path / "02.sql"
        second.write_text("INSERT INTO $(ETL_SCHEMA).stg_x VALUES ('1')\nGO\n")

        assert run_sql.main([str(first), str(second)]) == 0
        assert db.row_count("etl", "stg_x") == 1

    def test_run_sql_failure(self, patch_script, tmp_path):
        """Test a failing script exits with 1."""
        patch_script(run_sql)
        bad = tmp_path / "bad.sql"
        bad.write_text("INSERT INTO etl.nope VALUES (1)\nGO\n")

        assert run_sql.main([str(bad)]) == 1

    def test_run_pipeline(self, patch_script, db, tmp_path):
        """Test the pipeline runs the selected phases."""
        patch_script(run_pipeline)
        for directory, sql in [
            ("schema", "CREATE TABLE etl.stg_runs (phase TEXT)\nGO\n"),
            ("transforms", "INSERT INTO etl.stg_runs VALUES ('transforms')\nGO\n"),
            ("export", "INSERT INTO etl.stg_runs VALUES ('export')\nGO\n"),
        ]:
            (tmp_path / "sql" / directory).mkdir(parents=True)
            (tmp_path / "sql" / directory / "01.sql").write_text(sql)

        exit_code = run_pipeline.main(["--sql-dir", str(tmp_path / "sql"), "--transforms-only"])

        assert exit_code == 0
        assert [row["phase"] for row in db.fetch_all("SELECT phase FROM etl.stg_runs")] == ["transforms"]


# ============================================================================
# MAINTENANCE SCRIPTS
# ============================================================================

class TestMaintenanceScripts:
    """Test grace-period fix and schema cleanup."""

    def test_grace_period_dry_run(self, patch_script, db):
        """Test the default run changes nothing."""
        patch_script(fix_grace_period_dates)
        create_table(
            db, "dbo", "BrokerLicenses",
            ["EffectiveDate", "ExpirationDate", "GracePeriodDate", "LastModificationTime", "LastModifierUserId"],
            [("2025-01-01", "2099-12-31", "2026-03-01", None, None)],
        )

        assert fix_grace_period_dates.main([]) == 0
        assert db.fetch_scalar("SELECT ExpirationDate FROM dbo.BrokerLicenses") == "2099-12-31"

    def test_grace_period_execute(self, patch_script, db):
        """Test --execute applies the fix."""
        patch_script(fix_grace_period_dates)
        create_table(
            db, "dbo", "BrokerLicenses",
            ["EffectiveDate", "ExpirationDate", "GracePeriodDate", "LastModificationTime", "LastModifierUserId"],
            [("2025-01-01", "2099-12-31", "2026-03-01", None, None)],
        )

        assert fix_grace_period_dates.main(["--execute"]) == 0
        assert db.fetch_scalar("SELECT ExpirationDate FROM dbo.BrokerLicenses") == "2026-03-01"

    def test_cleanup_dry_run(self, patch_script, db):
        """Test the default cleanup run keeps every table."""
        patch_script(cleanup_schemas)
        create_table(db, "raw_data", "raw_premiums", ["a"], [("1",)])

        assert cleanup_schemas.main([]) == 0
        assert db.table_exists("raw_data", "raw_premiums") is True
