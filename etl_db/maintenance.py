"""
Maintenance mutations run after export.

- GracePeriodDateFix: corrects far-future expiration dates on broker
  licenses, appointments and E&O insurances.
- SchemaCleanup: removes schemas left behind by earlier runs.

Both default to a dry run; callers pass execute=True to change data.
"""
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from config.settings import GRACE_PERIOD_CONFIG
from etl_db.database import ETLDatabase
from logging_config.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# GRACE PERIOD DATES
# ============================================================================

class GracePeriodTable(BaseModel):
    name: str
    require_expiration: bool = False


GRACE_PERIOD_TABLES = [
    GracePeriodTable(name="BrokerLicenses"),
    GracePeriodTable(name="BrokerAppointments", require_expiration=True),
    GracePeriodTable(name="BrokerEOInsurances"),
]


class GracePeriodAnalysis(BaseModel):
    table: str
    affected_count: int
    min_bad_date: Optional[str] = None
    max_bad_date: Optional[str] = None


class GracePeriodDateFix:
    """Replace expiration dates past the cutoff with a sane date."""

    def __init__(
        self,
        db: ETLDatabase,
        schema: str = "dbo",
        tables: List[GracePeriodTable] = GRACE_PERIOD_TABLES,
        cutoff_date: str = GRACE_PERIOD_CONFIG["cutoff_date"],
        fallback_days: int = GRACE_PERIOD_CONFIG["fallback_days"],
        modifier_user_id: int = GRACE_PERIOD_CONFIG["modifier_user_id"],
        backup_suffix: str = GRACE_PERIOD_CONFIG["backup_suffix"]
    ):
        self.db = db
        self.schema = schema
        self.tables = tables
        self.cutoff_date = cutoff_date
        self.fallback_days = fallback_days
        self.modifier_user_id = modifier_user_id
        self.backup_suffix = backup_suffix

    def _where_bad(self, table: GracePeriodTable) -> str:
        clause = "ExpirationDate > :cutoff"
        if table.require_expiration:
            clause = "ExpirationDate IS NOT NULL AND " + clause
        return clause

    def _fallback_expression(self) -> str:
        if self.db.dialect == "sqlite":
            return f"date(EffectiveDate, '+{int(self.fallback_days)} days')"
        return f"DATEADD(day, {int(self.fallback_days)}, EffectiveDate)"

    def _utc_now_expression(self) -> str:
        # SQLite's CURRENT_TIMESTAMP is already UTC
        if self.db.dialect == "mssql":
            return "GETUTCDATE()"
        return "CURRENT_TIMESTAMP"

    def analyze(self) -> List[GracePeriodAnalysis]:
        """
        Count rows with an expiration date past the cutoff.

        Returns:
            One entry per existing table
        """
        logger.info("=" * 60)
        logger.info("ANALYZING AFFECTED RECORDS")
        logger.info("=" * 60)

        results = []
        for table in self.tables:
            if not self.db.table_exists(self.schema, table.name):
                logger.error(f"Error analyzing {table.name}: table not found in [{self.schema}]")
                continue

            row = self.db.fetch_all(
                f"""
                SELECT COUNT(*) AS affected_count,
                       MIN(ExpirationDate) AS min_bad_date,
                       MAX(ExpirationDate) AS max_bad_date
                FROM {self.db.qualify(self.schema, table.name)}
                WHERE {self._where_bad(table)}
                """,
                {"cutoff": self.cutoff_date},
            )[0]

            analysis = GracePeriodAnalysis(
                table=table.name,
                affected_count=int(row["affected_count"]),
                min_bad_date=str(row["min_bad_date"]) if row["min_bad_date"] is not None else None,
                max_bad_date=str(row["max_bad_date"]) if row["max_bad_date"] is not None else None,
            )
            logger.info(
                f"{analysis.table}: {analysis.affected_count} affected records "
                f"({analysis.min_bad_date} to {analysis.max_bad_date})"
            )
            results.append(analysis)

        return results

    def backup(self, table: GracePeriodTable) -> str:
        """Copy the affected rows to <Table>_Backup_GracePeriodFix (replacing it)."""
        backup_name = f"{table.name}{self.backup_suffix}"
        source = self.db.qualify(self.schema, table.name)
        target = self.db.qualify(self.schema, backup_name)

        self.db.drop_table(self.schema, backup_name)
        if self.db.dialect == "mssql":
            sql = f"SELECT * INTO {target} FROM {source} WHERE {self._where_bad(table)}"
        else:
            sql = f"CREATE TABLE {target} AS SELECT * FROM {source} WHERE {self._where_bad(table)}"
        self.db.execute(sql, {"cutoff": self.cutoff_date})

        logger.info(f"  Backed up affected {table.name} rows to {target}")
        return backup_name

    def fix_table(self, table: GracePeriodTable) -> int:
        """
        Back up and fix one table in a single transaction.

        Rows with a usable GracePeriodDate take it as their expiration
        date; the rest get EffectiveDate plus the fallback period.

        Returns:
            Rows updated
        """
        qualified = self.db.qualify(self.schema, table.name)
        where_bad = self._where_bad(table)
        params = {"cutoff": self.cutoff_date, "modifier": self.modifier_user_id}
        audit = f"LastModificationTime = {self._utc_now_expression()}, LastModifierUserId = :modifier"

        try:
            self.backup(table)

            from_grace = self.db.execute(
                f"""
                UPDATE {qualified}
                SET ExpirationDate = GracePeriodDate, {audit}
                WHERE {where_bad}
                  AND GracePeriodDate IS NOT NULL
                  AND GracePeriodDate < :cutoff
                """,
                params,
            ).rowcount

            from_effective = self.db.execute(
                f"""
                UPDATE {qualified}
                SET ExpirationDate = {self._fallback_expression()}, {audit}
                WHERE {where_bad}
                  AND EffectiveDate IS NOT NULL
                """,
                params,
            ).rowcount

            self.db.commit()
        except Exception:
            logger.error(f"Grace period fix failed for {table.name}, rolling back")
            self.db.rollback()
            raise

        logger.info(
            f"  {table.name}: {from_grace} from GracePeriodDate, "
            f"{from_effective} from EffectiveDate + {self.fallback_days} days"
        )
        return from_grace + from_effective

    def apply(self, analysis: Optional[List[GracePeriodAnalysis]] = None) -> Dict[str, int]:
        """
        Fix every table that has affected rows.

        Returns:
            {table: rows updated}
        """
        analysis = analysis if analysis is not None else self.analyze()
        affected = {a.table for a in analysis if a.affected_count > 0}

        logger.info("=" * 60)
        logger.info("FIXING GRACE PERIOD DATES")
        logger.info("=" * 60)

        updated = {}
        for table in self.tables:
            if table.name in affected:
                updated[table.name] = self.fix_table(table)
        return updated


# ============================================================================
# SCHEMA CLEANUP
# ============================================================================

KEEP_INTACT_SCHEMAS = {"dbo", "hangfire", "etl", "reporting", "backup"}
KEEP_EMPTY_SCHEMAS = {"raw_data", "trace"}
# "main" is SQLite's default database
SYSTEM_SCHEMAS = {
    "guest", "INFORMATION_SCHEMA", "sys", "main",
    "db_owner", "db_accessadmin", "db_securityadmin", "db_ddladmin",
    "db_backupoperator", "db_datareader", "db_datawriter",
    "db_denydatareader", "db_denydatawriter",
}


def is_system_schema(name: str) -> bool:
    return name in SYSTEM_SCHEMAS or name.startswith("db_")


class CleanupPlan(BaseModel):
    keep: List[str] = Field(default_factory=list)
    empty: List[str] = Field(default_factory=list)
    drop: List[str] = Field(default_factory=list)
    system: List[str] = Field(default_factory=list)
    # would be dropped, but not owned by dbo
    not_owned: List[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    dropped_objects: int = 0
    dropped_schemas: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


def plan_cleanup(schemas: Iterable[str], dbo_owned: Optional[Iterable[str]] = None) -> CleanupPlan:
    """
    Sort schema names into keep / empty / drop / system.

    Args:
        schemas: All schema names in the database
        dbo_owned: Schemas owned by dbo; only these are dropped. None
            treats every schema as dbo-owned.
    """
    owned = set(dbo_owned) if dbo_owned is not None else None
    plan = CleanupPlan()
    for name in sorted(schemas):
        if is_system_schema(name):
            plan.system.append(name)
        elif name in KEEP_INTACT_SCHEMAS:
            plan.keep.append(name)
        elif name in KEEP_EMPTY_SCHEMAS:
            plan.empty.append(name)
        elif owned is not None and name not in owned:
            plan.not_owned.append(name)
        else:
            plan.drop.append(name)
    return plan


class SchemaCleanup:
    """Drop schemas (and objects) that are not part of the current layout."""

    def __init__(self, db: ETLDatabase):
        self.db = db
        self._droppers = {
            "table": self.db.drop_table,
            "view": self.db.drop_view,
            "procedure": self.db.drop_procedure,
            "function": self.db.drop_function,
        }

    def log_plan(self, plan: CleanupPlan):
        logger.info(f"Keep intact:      {', '.join(plan.keep) or '-'}")
        logger.info(f"Empty (keep):     {', '.join(plan.empty) or '-'}")
        logger.info(f"Drop completely:  {', '.join(plan.drop) or '-'}")
        if plan.not_owned:
            logger.info(f"Skipped (not owned by dbo): {', '.join(plan.not_owned)}")
        for schema in plan.empty + plan.drop:
            tables = self.db.list_tables(schema)
            views = self.db.list_views(schema)
            procedures = self.db.list_procedures(schema)
            functions = self.db.list_functions(schema)
            logger.info(
                f"  [{schema}] {len(tables)} table(s), {len(views)} view(s), "
                f"{len(procedures)} procedure(s), {len(functions)} function(s)"
            )

    def _attempt(self, label: str, action, result: CleanupResult, counts: bool = True) -> bool:
        try:
            action()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            message = f"Failed to drop {label}: {e}"
            logger.error(f"  ❌ {message}")
            result.errors.append(message)
            return False

        if counts:
            result.dropped_objects += 1
        logger.info(f"  Dropped {label}")
        return True

    def _drop(self, kind: str, schema: str, name: str, result: CleanupResult):
        dropper = self._droppers[kind]
        self._attempt(f"{kind} [{schema}].[{name}]", lambda: dropper(schema, name), result)

    def _drop_foreign_keys(self, schema: str, result: CleanupResult):
        keys = self.db.list_foreign_keys(schema, incoming=True) + self.db.list_foreign_keys(schema)
        for key in keys:
            owner, table, name = key["schema_name"], key["table_name"], key["constraint_name"]
            self._attempt(
                f"foreign key [{owner}].[{table}].[{name}]",
                lambda: self.db.drop_foreign_key(owner, table, name),
                result,
            )

    def empty_schema(self, schema: str, result: CleanupResult):
        """
        Drop every object in a schema.

        Foreign keys go first (those referencing the schema from elsewhere,
        then its own), then tables, views, procedures and functions.
        """
        self._drop_foreign_keys(schema, result)
        for table in self.db.list_tables(schema):
            self._drop("table", schema, table, result)
        for view in self.db.list_views(schema):
            self._drop("view", schema, view, result)
        for procedure in self.db.list_procedures(schema):
            self._drop("procedure", schema, procedure, result)
        for function in self.db.list_functions(schema):
            self._drop("function", schema, function, result)

    def run(self, execute: bool = False) -> CleanupResult:
        """
        Plan and (in execute mode) perform the cleanup.

        Args:
            execute: Actually drop objects; otherwise only log the plan
        """
        plan = plan_cleanup(self.db.list_schemas(), dbo_owned=self.db.list_dbo_owned_schemas())
        self.log_plan(plan)

        result = CleanupResult()
        if not execute:
            logger.info("🔍 DRY RUN MODE - No changes were made")
            return result

        for schema in plan.empty:
            self.empty_schema(schema, result)

        for schema in plan.drop:
            self.empty_schema(schema, result)
            if self._attempt(f"schema [{schema}]", lambda: self.db.drop_schema(schema), result, counts=False):
                result.dropped_schemas.append(schema)

        return result
