"""
Tests for row-count diagnostics.
"""

import pandas as pd

from etl_db.diagnostics import (
    COUNT_GROUPS,
    table_counts,
    prefixed_table_counts,
    staging_report,
    list_schemas,
    count_groups,
    render_table,
)
from conftest import create_table


# ============================================================================
# COUNT TESTS
# ============================================================================

class TestTableCounts:
    """Test per-table counts."""

    def test_counts_sorted_by_name(self, db):
        """Test counts are returned sorted by table name."""
        create_table(db, "etl", "raw_premiums", ["a"], [("1",), ("2",)])
        create_table(db, "etl", "raw_fees", ["a"], [("1",)])

        df = table_counts(db, "etl", ["raw_premiums", "raw_fees"])

        assert df.to_dict("records") == [
            {"tbl": "raw_fees", "cnt": 1},
            {"tbl": "raw_premiums", "cnt": 2},
        ]

    def test_missing_table(self, db):
        """Test missing tables are reported with no count."""
        df = table_counts(db, "etl", ["raw_nope"])
        assert df.to_dict("records") == [{"tbl": "raw_nope", "cnt": None}]

    def test_count_groups(self, db):
        """Test every group is counted and keyed by title."""
        create_table(db, "dbo", "Brokers", ["Id"], [("1",)])

        results = count_groups(db)

        assert list(results) == [title for title, _, _ in COUNT_GROUPS]
        production = results["PRODUCTION TABLES (dbo schema)"].set_index("tbl")["cnt"]
        assert production["Brokers"] == 1
        assert production["Policies"] is None


class TestPrefixedCounts:
    """Test staging table counts."""

    def test_prefix_filter_and_order(self, db):
        """Test only prefixed tables are counted, largest first."""
        create_table(db, "etl", "stg_brokers", ["a"], [("1",)])
        create_table(db, "etl", "stg_policies", ["a"], [("1",), ("2",), ("3",)])
        create_table(db, "etl", "stg_groups", ["a"])
        create_table(db, "etl", "raw_premiums", ["a"], [("1",)] * 5)

        df = prefixed_table_counts(db, "etl", "stg_")

        assert df.to_dict("records") == [
            {"tbl": "stg_policies", "cnt": 3},
            {"tbl": "stg_brokers", "cnt": 1},
            {"tbl": "stg_groups", "cnt": 0},
        ]

    def test_no_tables(self, db):
        """Test an empty result when nothing matches."""
        assert prefixed_table_counts(db, "etl", "stg_").empty


# ============================================================================
# REPORT TESTS
# ============================================================================

class TestReports:
    """Test text output helpers."""

    def test_staging_report(self):
        """Test totals and icons in the staging report."""
        counts = pd.DataFrame({"tbl": ["stg_policies", "stg_groups"], "cnt": [1200, 0]})

        lines = staging_report(counts, "etl", top_n=15)

        assert "Total: 2 tables, 1,200 records" in lines
        assert "1. ✅ stg_policies: 1,200 records" in lines
        assert "2. ⚠️  stg_groups: 0 records" in lines

    def test_staging_report_top_n(self):
        """Test only top_n tables are listed."""
        counts = pd.DataFrame({"tbl": [f"stg_{i}" for i in range(5)], "cnt": [5, 4, 3, 2, 1]})

        lines = staging_report(counts, "etl", top_n=2)

        assert sum(1 for line in lines if "records" in line and line[0].isdigit()) == 2
        assert "Total: 5 tables, 15 records" in lines

    def test_render_table(self):
        """Test DataFrames render as text and empty frames say so."""
        assert render_table(pd.DataFrame(columns=["tbl", "cnt"])) == "(no rows)"
        assert "raw_fees" in render_table(pd.DataFrame({"tbl": ["raw_fees"], "cnt": [1]}))

    def test_list_schemas(self, db):
        """Test schema listing with a prefix."""
        assert list_schemas(db, "raw") == ["raw_data"]
        assert {"etl", "dbo", "raw_data"} <= set(list_schemas(db))
