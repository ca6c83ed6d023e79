"""
Database access for the ETL schemas.

Thin wrapper around a SQLAlchemy engine (SQL Server via pyodbc in
production) with the handful of operations the ETL scripts share:
row counts, truncation, table creation and batched inserts.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence

import sqlalchemy
from sqlalchemy import Column, MetaData, Table, UnicodeText, inspect, text
from sqlalchemy.engine import Connection, Engine

from config.etl_config import ETLConfig, build_engine_url
from config.settings import DB_CONFIG
from logging_config.logger import get_logger

logger = get_logger(__name__)


class ETLDatabase:
    """Connection handler for the ETL database."""

    def __init__(self, url: Any = None, engine: Optional[Engine] = None, **engine_kwargs):
        """
        Initialize database handler.

        Args:
            url: SQLAlchemy URL (string or URL object)
            engine: Existing engine; takes precedence over url
            **engine_kwargs: Extra create_engine() arguments
        """
        if engine is None:
            if url is None:
                raise ValueError("Either url or engine is required")
            engine = self._create_engine(url, **engine_kwargs)

        self.engine = engine
        self.conn: Optional[Connection] = None
        logger.debug(f"Initialized DB handler: {self.engine.url.render_as_string(hide_password=True)}")

    @staticmethod
    def _create_engine(url: Any, **engine_kwargs) -> Engine:
        url = sqlalchemy.engine.make_url(url)
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}

        if url.get_backend_name() == "mssql":
            kwargs.update(
                fast_executemany=True,
                pool_size=DB_CONFIG["pool_size"],
                connect_args={"timeout": DB_CONFIG["connection_timeout"]},
            )

        kwargs.update(engine_kwargs)
        return sqlalchemy.create_engine(url, **kwargs)

    @classmethod
    def from_config(cls, config: ETLConfig) -> "ETLDatabase":
        """Create a handler from the loaded ETL configuration."""
        return cls(url=build_engine_url(config))

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def connect(self):
        """Establish database connection."""
        self.conn = self.engine.connect()
        if self.dialect == "mssql":
            # pyodbc query timeout, seconds
            self.conn.connection.dbapi_connection.timeout = DB_CONFIG["request_timeout"]
        logger.debug("Database connection established")

    def close(self):
        """Close database connection."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.debug("Database connection closed")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        if exc_type:
            logger.error(f"Error during database operation: {exc_val}")
            if self.conn is not None:
                self.conn.rollback()
        else:
            if self.conn is not None:
                self.conn.commit()
        self.close()

    def _connection(self) -> Connection:
        if self.conn is None:
            raise RuntimeError("Database is not connected; use 'with ETLDatabase(...)' or connect()")
        return self.conn

    def commit(self):
        self._connection().commit()

    def rollback(self):
        self._connection().rollback()

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def quote(self, name: str) -> str:
        """Quote an identifier for the current dialect ([x] on SQL Server)."""
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    def qualify(self, schema: str, table: str) -> str:
        """Schema-qualified, quoted table name."""
        return f"{self.quote(schema)}.{self.quote(table)}"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None):
        """Execute a statement with named (:param) bind parameters."""
        return self._connection().execute(text(sql), params or {})

    def execute_script_batch(self, sql: str) -> int:
        """
        Execute raw SQL through the driver, without bind-parameter parsing.

        Returns:
            Rows affected (0 when the driver reports none)
        """
        result = self._connection().exec_driver_sql(sql)
        rowcount = result.rowcount if result.rowcount is not None else -1
        result.close()
        return max(rowcount, 0)

    def fetch_all(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a query and return rows as dicts."""
        result = self.execute(sql, params)
        return [dict(row) for row in result.mappings()]

    def fetch_scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute(sql, params).scalar()

    def row_count(self, schema: str, table: str) -> int:
        """Get total number of rows in schema.table."""
        return int(self.fetch_scalar(f"SELECT COUNT(*) AS cnt FROM {self.qualify(schema, table)}"))

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def table_exists(self, schema: str, table: str) -> bool:
        return inspect(self._connection()).has_table(table, schema=schema)

    def list_schemas(self, prefix: str = "") -> List[str]:
        """Schema names starting with prefix, sorted."""
        names = inspect(self._connection()).get_schema_names()
        return sorted(name for name in names if name.startswith(prefix))

    def list_tables(self, schema: str, prefix: str = "") -> List[str]:
        """Table names in schema starting with prefix, sorted."""
        names = inspect(self._connection()).get_table_names(schema=schema)
        return sorted(name for name in names if name.startswith(prefix))

    def list_views(self, schema: str) -> List[str]:
        return sorted(inspect(self._connection()).get_view_names(schema=schema))

    def list_dbo_owned_schemas(self) -> List[str]:
        """
        Schemas owned by dbo (principal_id 1), sorted.

        SQLite has no schema owners, so every attached database counts.
        """
        if self.dialect != "mssql":
            return self.list_schemas()
        rows = self.fetch_all("SELECT name FROM sys.schemas WHERE principal_id = 1 ORDER BY name")
        return [row["name"] for row in rows]

    def list_foreign_keys(self, schema: str, incoming: bool = False) -> List[Dict[str, str]]:
        """
        Foreign keys that tie schema's tables to other tables.

        Args:
            schema: Schema being emptied
            incoming: Keys declared in other schemas that reference this
                schema's tables; otherwise keys declared on this schema's tables

        Returns:
            Dicts with schema_name, table_name and constraint_name of the
            table that owns the constraint. Always empty on SQLite, where
            foreign keys are part of the table definition.
        """
        if self.dialect != "mssql":
            return []

        if incoming:
            sql = """
                SELECT OBJECT_SCHEMA_NAME(fk.parent_object_id) AS schema_name,
                       OBJECT_NAME(fk.parent_object_id) AS table_name,
                       fk.name AS constraint_name
                FROM sys.foreign_keys fk
                INNER JOIN sys.tables t ON fk.referenced_object_id = t.object_id
                WHERE t.schema_id = SCHEMA_ID(:schema)
                  AND OBJECT_SCHEMA_NAME(fk.parent_object_id) <> :schema
                ORDER BY schema_name, table_name, constraint_name
            """
        else:
            sql = """
                SELECT OBJECT_SCHEMA_NAME(fk.parent_object_id) AS schema_name,
                       OBJECT_NAME(fk.parent_object_id) AS table_name,
                       fk.name AS constraint_name
                FROM sys.foreign_keys fk
                INNER JOIN sys.tables t ON fk.parent_object_id = t.object_id
                WHERE t.schema_id = SCHEMA_ID(:schema)
                ORDER BY table_name, constraint_name
            """
        return self.fetch_all(sql, {"schema": schema})

    def list_procedures(self, schema: str) -> List[str]:
        """Stored procedures in schema (none on SQLite)."""
        if self.dialect != "mssql":
            return []
        rows = self.fetch_all(
            "SELECT name FROM sys.procedures WHERE schema_id = SCHEMA_ID(:schema) ORDER BY name",
            {"schema": schema},
        )
        return [row["name"] for row in rows]

    def list_functions(self, schema: str) -> List[str]:
        """Scalar, inline and table-valued functions in schema (none on SQLite)."""
        if self.dialect != "mssql":
            return []
        rows = self.fetch_all(
            """
            SELECT name FROM sys.objects
            WHERE schema_id = SCHEMA_ID(:schema) AND type IN ('FN', 'IF', 'TF')
            ORDER BY name
            """,
            {"schema": schema},
        )
        return [row["name"] for row in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def truncate_table(self, schema: str, table: str):
        """Remove all rows from schema.table."""
        if self.dialect == "sqlite":
            # SQLite has no TRUNCATE
            self.execute(f"DELETE FROM {self.qualify(schema, table)}")
        else:
            self.execute(f"TRUNCATE TABLE {self.qualify(schema, table)}")

    def drop_table(self, schema: str, table: str):
        self.execute(f"DROP TABLE IF EXISTS {self.qualify(schema, table)}")

    def drop_view(self, schema: str, view: str):
        self.execute(f"DROP VIEW IF EXISTS {self.qualify(schema, view)}")

    def drop_foreign_key(self, schema: str, table: str, constraint: str):
        self.execute(f"ALTER TABLE {self.qualify(schema, table)} DROP CONSTRAINT {self.quote(constraint)}")

    def drop_procedure(self, schema: str, procedure: str):
        self.execute(f"DROP PROCEDURE {self.qualify(schema, procedure)}")

    def drop_function(self, schema: str, function: str):
        self.execute(f"DROP FUNCTION {self.qualify(schema, function)}")

    def drop_schema(self, schema: str):
        """Drop an (empty) schema."""
        if self.dialect == "sqlite":
            # attached databases play the role of schemas
            self.execute(f"DETACH DATABASE {self.quote(schema)}")
        else:
            self.execute(f"DROP SCHEMA {self.quote(schema)}")

    def create_text_table(self, schema: str, table: str, columns: Sequence[str]) -> Table:
        """
        Drop and create schema.table with nullable text columns.

        Columns map to NVARCHAR(MAX) on SQL Server.

        Returns:
            The created Table object
        """
        conn = self._connection()
        sa_table = Table(
            table,
            MetaData(),
            *[Column(name, UnicodeText, nullable=True) for name in columns],
            schema=schema,
        )
        sa_table.drop(conn, checkfirst=True)
        sa_table.create(conn)
        logger.info(f"   Created table {self.qualify(schema, table)} with {len(columns)} columns")
        return sa_table

    def insert_rows(
        self,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Iterable[Dict[str, Any]]
    ) -> int:
        """
        Insert rows into schema.table as one executemany call.

        Args:
            schema: Target schema
            table: Target table
            columns: Columns to insert; keys missing from a row insert NULL
            rows: Row dictionaries

        Returns:
            Number of rows inserted
        """
        values = [{column: row.get(column) for column in columns} for row in rows]
        if not values:
            return 0

        target = sqlalchemy.table(table, *[sqlalchemy.column(c) for c in columns], schema=schema)
        self._connection().execute(target.insert(), values)
        return len(values)
