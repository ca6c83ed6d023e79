"""
Row-count and schema diagnostics.
"""
from typing import Dict, List, Sequence, Tuple

import pandas as pd

from etl_db.database import ETLDatabase
from logging_config.logger import get_logger

logger = get_logger(__name__)


# (title, schema, tables) for the check-counts report
COUNT_GROUPS: List[Tuple[str, str, List[str]]] = [
    (
        "RAW TABLES (etl schema)",
        "etl",
        [
            "raw_premiums",
            "raw_certificate_info",
            "raw_individual_brokers",
            "raw_org_brokers",
            "raw_schedule_rates",
            "raw_commissions_detail",
        ],
    ),
    (
        "STAGING TABLES (etl schema)",
        "etl",
        [
            "stg_brokers",
            "stg_groups",
            "stg_policies",
            "stg_proposals",
            "stg_hierarchies",
            "stg_hierarchy_participants",
            "stg_premium_transactions",
            "stg_schedules",
            "stg_schedule_rates",
        ],
    ),
    (
        "PRODUCTION TABLES (dbo schema)",
        "dbo",
        [
            "Brokers",
            "Group",
            "Policies",
            "Proposals",
            "Hierarchies",
            "HierarchyParticipants",
            "PremiumTransactions",
            "Schedules",
            "ScheduleRates",
        ],
    ),
]

TOP_N = 15

_MSSQL_PREFIXED_COUNTS = """
    SELECT t.name AS tbl,
           (SELECT SUM(p.rows)
            FROM sys.partitions p
            WHERE p.object_id = t.object_id AND p.index_id IN (0, 1)) AS cnt
    FROM sys.tables t
    INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
    WHERE s.name = :schema AND t.name LIKE :pattern
"""


def table_counts(db: ETLDatabase, schema: str, tables: Sequence[str]) -> pd.DataFrame:
    """
    Count rows in each table.

    Args:
        db: Connected database handler
        schema: Schema of the tables
        tables: Table names

    Returns:
        DataFrame (tbl, cnt) sorted by table name; cnt is None for
        tables that do not exist
    """
    rows = []
    for table in tables:
        if db.table_exists(schema, table):
            rows.append({"tbl": table, "cnt": db.row_count(schema, table)})
        else:
            logger.warning(f"Table not found: {schema}.{table}")
            rows.append({"tbl": table, "cnt": None})

    df = pd.DataFrame(rows, columns=["tbl", "cnt"], dtype=object)
    return df.sort_values("tbl", kind="stable").reset_index(drop=True)


def prefixed_table_counts(db: ETLDatabase, schema: str, prefix: str) -> pd.DataFrame:
    """
    Row counts of every table in schema whose name starts with prefix.

    SQL Server reads partition statistics; other dialects count rows.

    Returns:
        DataFrame (tbl, cnt) sorted by count, largest first
    """
    if db.dialect == "mssql":
        escaped = prefix.replace("[", "[[]").replace("_", "[_]").replace("%", "[%]")
        rows = db.fetch_all(_MSSQL_PREFIXED_COUNTS, {"schema": schema, "pattern": f"{escaped}%"})
    else:
        rows = [
            {"tbl": table, "cnt": db.row_count(schema, table)}
            for table in db.list_tables(schema, prefix)
        ]

    df = pd.DataFrame(rows, columns=["tbl", "cnt"])
    df["cnt"] = df["cnt"].fillna(0).astype(int)
    return df.sort_values(["cnt", "tbl"], ascending=[False, True]).reset_index(drop=True)


def staging_report(counts: pd.DataFrame, schema: str, top_n: int = TOP_N) -> List[str]:
    """
    Format the staging-count report lines.

    Args:
        counts: Output of prefixed_table_counts()
        schema: Schema name for the title
        top_n: Number of tables to list
    """
    total_records = int(counts["cnt"].sum()) if not counts.empty else 0
    lines = [
        "=" * 50,
        f"  Staging Tables in [{schema}] - By Record Count",
        "=" * 50,
        f"Total: {len(counts)} tables, {total_records:,} records",
        f"Top {top_n} tables:",
    ]
    for i, row in enumerate(counts.head(top_n).itertuples(index=False), start=1):
        icon = "✅" if row.cnt > 0 else "⚠️ "
        lines.append(f"{i}. {icon} {row.tbl}: {row.cnt:,} records")
    lines.append("=" * 50)
    return lines


def list_schemas(db: ETLDatabase, prefix: str = "") -> List[str]:
    """Schema names starting with prefix."""
    return db.list_schemas(prefix)


def count_groups(db: ETLDatabase, groups=COUNT_GROUPS) -> Dict[str, pd.DataFrame]:
    """Run table_counts for every group; keyed by group title."""
    return {title: table_counts(db, schema, tables) for title, schema, tables in groups}


def render_table(df: pd.DataFrame) -> str:
    """Render a DataFrame as a plain-text table."""
    if df.empty:
        return "(no rows)"
    return df.to_string(index=False)
