"""Pytest configuration and shared fixtures."""

import os
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

import psycopg
import pytest
from psycopg import Connection

from dbmeta import CollectorSettings, MetadataCollector
from dbmeta.introspection.port import ColumnShape
from dbmeta.sqltypes import SqlType

TEST_DATABASE_URL = os.environ.get("DBMETA_TEST_DATABASE_URL", "postgresql://localhost/dbmeta_test")


@dataclass
class FakeTable:
    """Canned introspection results for one table."""

    columns: list[ColumnShape]
    primary_key: list[str] = field(default_factory=list)
    foreign_keys: list[dict] = field(default_factory=list)
    index_rows: list[dict] = field(default_factory=list)


def integer(name: str, nullable: bool = False, auto_increment: bool = False) -> ColumnShape:
    return ColumnShape(
        name, SqlType.INTEGER, "INTEGER", 32, 0, nullable=nullable, auto_increment=auto_increment
    )


def varchar(name: str, length: int = 255) -> ColumnShape:
    return ColumnShape(name, SqlType.VARCHAR, "VARCHAR", length, 0)


def fk_row(
    column: str,
    table: str,
    target_column: str = "ID",
    schema: Optional[str] = "TEST",
    name: Optional[str] = None,
    update_rule: Optional[int] = 0,
    delete_rule: Optional[int] = 1,
) -> dict:
    return {
        "PKTABLE_SCHEM": schema,
        "PKTABLE_NAME": table,
        "PKCOLUMN_NAME": target_column,
        "FKCOLUMN_NAME": column,
        "KEY_SEQ": 1,
        "UPDATE_RULE": update_rule,
        "DELETE_RULE": delete_rule,
        "FK_NAME": name or f"FK_{column}",
    }


def index_row(
    index: Optional[str],
    column: Optional[str],
    ordinal: int,
    unique: bool = False,
    order: Optional[str] = "A",
) -> dict:
    return {
        "INDEX_NAME": index,
        "NON_UNIQUE": not unique,
        "TYPE": 3,
        "CARDINALITY": 0,
        "PAGES": 0,
        "COLUMN_NAME": column,
        "ASC_OR_DESC": order,
        "ORDINAL_POSITION": ordinal,
        "SORT_TYPE": None,
    }


def sample_catalog() -> dict[str, dict[str, FakeTable]]:
    """TEST (DEPARTMENT, POSITION, EMPLOYEE), PUBLIC (edge cases), INFORMATION_SCHEMA."""
    return {
        "TEST": {
            "DEPARTMENT": FakeTable(
                columns=[integer("ID", auto_increment=True), varchar("NAME")],
                primary_key=["ID"],
                index_rows=[index_row("PK_DEPARTMENT", "ID", 1, unique=True)],
            ),
            "POSITION": FakeTable(
                columns=[integer("ID", auto_increment=True), varchar("TITLE")],
                primary_key=["ID"],
                index_rows=[index_row("PK_POSITION", "ID", 1, unique=True)],
            ),
            "EMPLOYEE": FakeTable(
                columns=[
                    integer("ID", auto_increment=True),
                    varchar("FIRST_NAME"),
                    varchar("LAST_NAME"),
                    integer("DEPARTMENT_ID"),
                    integer("POSITION_ID"),
                    ColumnShape("PHOTO", SqlType.BLOB, "BLOB"),
                ],
                primary_key=["ID"],
                foreign_keys=[
                    fk_row("DEPARTMENT_ID", "DEPARTMENT", name="FK_EMPLOYEE_DEPARTMENT"),
                    fk_row("POSITION_ID", "POSITION", name="FK_EMPLOYEE_POSITION"),
                ],
                index_rows=[
                    index_row("PK_EMPLOYEE", "ID", 1, unique=True),
                    # Reported out of ordinal order on purpose
                    index_row("NAME_IDX", "FIRST_NAME", 2, order="D"),
                    index_row("NAME_IDX", "LAST_NAME", 1),
                    index_row(None, None, 0),
                ],
            ),
        },
        "PUBLIC": {
            "NODE": FakeTable(
                columns=[integer("ID"), integer("PARENT_ID", nullable=True)],
                primary_key=["ID"],
                foreign_keys=[fk_row("PARENT_ID", "NODE", schema="PUBLIC")],
            ),
            "AUTHOR": FakeTable(
                columns=[integer("ID"), integer("FAVORITE_BOOK_ID", nullable=True)],
                primary_key=["ID"],
                foreign_keys=[fk_row("FAVORITE_BOOK_ID", "BOOK", schema="PUBLIC")],
            ),
            "BOOK": FakeTable(
                columns=[integer("ID"), integer("AUTHOR_ID")],
                primary_key=["ID"],
                foreign_keys=[fk_row("AUTHOR_ID", "AUTHOR", schema="PUBLIC")],
            ),
            "ORDER_LINE": FakeTable(
                columns=[integer("LINE_NO"), integer("ORDER_ID"), varchar("PRODUCT")],
                primary_key=["ORDER_ID", "LINE_NO"],
            ),
        },
        "INFORMATION_SCHEMA": {},
    }


class FakeIntrospector:
    """In-memory introspection port that counts every call."""

    default_identifier_case = "upper"

    def __init__(
        self,
        catalog: Optional[dict[str, dict[str, FakeTable]]] = None,
        *,
        max_identifier_length: int = 0,
        current_schema: Optional[str] = "TEST",
        delay: float = 0.0,
        failures: Optional[dict[tuple[str, str], Exception]] = None,
        fail_list_schemas: bool = False,
    ):
        self.catalog = catalog if catalog is not None else sample_catalog()
        self._max_identifier_length = max_identifier_length
        self._current_schema = current_schema
        self.delay = delay
        self.failures = failures or {}
        self.fail_list_schemas = fail_list_schemas
        self.calls: Counter = Counter()
        self._lock = threading.Lock()

    def _record(self, *key: Any) -> None:
        with self._lock:
            self.calls[key] += 1

    def _table(self, schema: Optional[str], table: str) -> FakeTable:
        return self.catalog[schema][table]

    def list_schemas(self) -> list[str]:
        self._record("list_schemas")
        if self.fail_list_schemas:
            raise RuntimeError("connection reset")
        return list(self.catalog)

    def schema_exists(self, name: str) -> bool:
        self._record("schema_exists", name)
        return name in self.catalog

    def list_tables(self, schema: str) -> list[str]:
        self._record("list_tables", schema)
        return list(self.catalog[schema])

    def column_shapes(self, schema: Optional[str], table: str) -> list[ColumnShape]:
        self._record("column_shapes", schema, table)
        if self.delay:
            time.sleep(self.delay)
        if (schema, table) in self.failures:
            raise self.failures[(schema, table)]
        return list(self._table(schema, table).columns)

    def primary_key_columns(self, schema: Optional[str], table: str) -> list[str]:
        self._record("primary_key_columns", schema, table)
        return list(self._table(schema, table).primary_key)

    def imported_keys(self, schema: Optional[str], table: str) -> list[dict]:
        self._record("imported_keys", schema, table)
        rows = [dict(row) for row in self._table(schema, table).foreign_keys]
        if 0 < self._max_identifier_length < len("FK_NAME"):
            # Drivers truncate the synthetic constraint-name alias
            for row in rows:
                row["FK_NAME"[: self._max_identifier_length]] = row.pop("FK_NAME")
        return rows

    def index_rows(self, schema: Optional[str], table: str) -> list[dict]:
        self._record("index_rows", schema, table)
        return [dict(row) for row in self._table(schema, table).index_rows]

    def max_identifier_length(self) -> int:
        self._record("max_identifier_length")
        return self._max_identifier_length

    def product_name(self) -> str:
        self._record("product_name")
        return "FakeDB"

    def product_version(self) -> Optional[str]:
        return "1.0"

    def current_schema(self) -> Optional[str]:
        self._record("current_schema")
        return self._current_schema

    def count(self, *key: Any) -> int:
        with self._lock:
            return self.calls[key]


class FakeConnection:
    """Stand-in DB-API connection; the fake port never touches it."""

    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


def make_collector(fake: FakeIntrospector, **kwargs: Any) -> MetadataCollector:
    """Build a collector backed by a fake introspection port."""
    kwargs.setdefault("settings", CollectorSettings())
    return MetadataCollector(
        FakeConnection(),
        introspector=lambda connections, **_: fake,
        **kwargs,
    )


@pytest.fixture
def fake() -> FakeIntrospector:
    """Provide a fake introspection port over the sample catalog."""
    return FakeIntrospector()


@pytest.fixture
def collector(fake: FakeIntrospector) -> MetadataCollector:
    """Provide a collector over the fake port."""
    collector = make_collector(fake)
    yield collector
    collector.close()


@pytest.fixture
def db_conn() -> Connection:
    """
    Provide a test database connection.

    Skips when no PostgreSQL test database is reachable
    (set DBMETA_TEST_DATABASE_URL to point at one).
    """
    try:
        conn = psycopg.connect(TEST_DATABASE_URL, autocommit=False)
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL test database unavailable: {e}")

    yield conn

    conn.rollback()
    conn.close()


@pytest.fixture
def test_schema(db_conn: Connection) -> str:
    """
    Create a test schema with department/position/employee tables.

    Returns the schema name.
    """
    schema_name = "dbmeta_test"

    with db_conn.cursor() as cur:
        cur.execute(f"DROP SCHEMA IF EXISTS {schema_name} CASCADE")
        cur.execute(f"CREATE SCHEMA {schema_name}")

        cur.execute(f"""
            CREATE TABLE {schema_name}.department (
                id INTEGER GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
                name VARCHAR(100) NOT NULL
            )
        """)
        cur.execute(f"""
            CREATE TABLE {schema_name}.position (
                id INTEGER GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
                title TEXT NOT NULL
            )
        """)
        cur.execute(f"""
            CREATE TABLE {schema_name}.employee (
                id INTEGER GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL,
                salary NUMERIC(10, 2),
                department_id INTEGER NOT NULL
                    REFERENCES {schema_name}.department(id)
                    ON DELETE RESTRICT ON UPDATE CASCADE,
                position_id INTEGER REFERENCES {schema_name}.position(id),
                manager_id INTEGER REFERENCES {schema_name}.employee(id),
                photo BYTEA
            )
        """)
        cur.execute(
            f"CREATE INDEX name_idx ON {schema_name}.employee (last_name, first_name DESC)"
        )
        cur.execute(f"CREATE SEQUENCE {schema_name}.invoice_seq INCREMENT BY 5")

        db_conn.commit()

    yield schema_name

    with db_conn.cursor() as cur:
        cur.execute(f"DROP SCHEMA IF EXISTS {schema_name} CASCADE")
        db_conn.commit()
