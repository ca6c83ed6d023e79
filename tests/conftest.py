"""
Shared fixtures.

SQL Server schemas are emulated with SQLite attached databases, so
"etl"."raw_premiums" style names work unchanged in tests.
"""
import pytest
import pandas as pd
from pathlib import Path
from sqlalchemy import create_engine, event

from config.etl_config import ETLConfig, DatabaseConfig
from etl_db.database import ETLDatabase

TEST_SCHEMAS = ["etl", "raw_data", "dbo"]


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'main.db'}"


@pytest.fixture
def engine(tmp_path, sqlite_url):
    """SQLite engine with etl, raw_data and dbo attached as schemas."""
    engine = create_engine(sqlite_url)

    @event.listens_for(engine, "connect")
    def attach_schemas(dbapi_connection, connection_record):
        for schema in TEST_SCHEMAS:
            dbapi_connection.execute(f"ATTACH DATABASE '{tmp_path / (schema + '.db')}' AS {schema}")

    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Connected ETLDatabase."""
    with ETLDatabase(engine=engine) as database:
        yield database


@pytest.fixture
def etl_config(sqlite_url):
    """Config pointing at the test database."""
    return ETLConfig(database=DatabaseConfig(url=sqlite_url))


def create_table(db, schema, table, columns, rows=()):
    """Create an all-text table and insert rows."""
    db.create_text_table(schema, table, columns)
    db.insert_rows(schema, table, columns, [dict(zip(columns, row)) for row in rows])
    db.commit()


# ============================================================================
# CSV FILES
# ============================================================================

@pytest.fixture
def data_dir(tmp_path):
    """Empty raw data directory."""
    path = tmp_path / "rawdata"
    path.mkdir()
    return path


def write_csv(path: Path, data: dict, encoding: str = "utf-8") -> Path:
    """Write a CSV from a column -> values mapping."""
    pd.DataFrame(data).to_csv(path, index=False, encoding=encoding)
    return path
