"""PostgreSQL introspection over psycopg."""

import logging
import time
from typing import Any, Optional

import psycopg
from psycopg import pq, sql
from psycopg.rows import dict_row

from dbmeta.connections import ConnectionProvider
from dbmeta.introspection.port import ColumnShape, ForeignKeyRow, IndexRow
from dbmeta.sqltypes import SqlType

logger = logging.getLogger(__name__)

# udt_name -> SQL type code, matching what the PostgreSQL JDBC driver reports
PG_SQL_TYPES: dict[str, int] = {
    "bool": SqlType.BIT,
    "int2": SqlType.SMALLINT,
    "int4": SqlType.INTEGER,
    "int8": SqlType.BIGINT,
    "oid": SqlType.BIGINT,
    "numeric": SqlType.NUMERIC,
    "float4": SqlType.REAL,
    "float8": SqlType.DOUBLE,
    "money": SqlType.DOUBLE,
    "bpchar": SqlType.CHAR,
    "char": SqlType.CHAR,
    "varchar": SqlType.VARCHAR,
    "text": SqlType.VARCHAR,
    "name": SqlType.VARCHAR,
    "citext": SqlType.VARCHAR,
    "bytea": SqlType.BINARY,
    "date": SqlType.DATE,
    "time": SqlType.TIME,
    "timetz": SqlType.TIME,
    "timestamp": SqlType.TIMESTAMP,
    "timestamptz": SqlType.TIMESTAMP,
    "xml": SqlType.SQLXML,
}

_RULE_CODE = """CASE {0}
        WHEN 'c' THEN 0
        WHEN 'r' THEN 1
        WHEN 'n' THEN 2
        WHEN 'a' THEN 3
        WHEN 'd' THEN 4
    END"""

IMPORTED_KEYS_QUERY = f"""
SELECT
    fn.nspname AS "PKTABLE_SCHEM",
    fc.relname AS "PKTABLE_NAME",
    fa.attname AS "PKCOLUMN_NAME",
    a.attname AS "FKCOLUMN_NAME",
    k.key_seq AS "KEY_SEQ",
    {_RULE_CODE.format("con.confupdtype")} AS "UPDATE_RULE",
    {_RULE_CODE.format("con.confdeltype")} AS "DELETE_RULE",
    con.conname AS "FK_NAME"
FROM pg_constraint con
JOIN pg_class c ON c.oid = con.conrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
JOIN pg_class fc ON fc.oid = con.confrelid
JOIN pg_namespace fn ON fn.oid = fc.relnamespace
CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
    WITH ORDINALITY AS k(attnum, fattnum, key_seq)
JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
JOIN pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.fattnum
WHERE con.contype = 'f'
  AND n.nspname = %s
  AND c.relname = %s
ORDER BY fn.nspname, fc.relname, k.key_seq
"""

INDEX_ROWS_QUERY = """
SELECT
    ic.relname AS "INDEX_NAME",
    NOT i.indisunique AS "NON_UNIQUE",
    3 AS "TYPE",
    ic.reltuples::bigint AS "CARDINALITY",
    ic.relpages AS "PAGES",
    a.attname AS "COLUMN_NAME",
    CASE WHEN (i.indoption[(k.ordinal - 1)::int] & 1) = 1 THEN 'D' ELSE 'A' END
        AS "ASC_OR_DESC",
    k.ordinal AS "ORDINAL_POSITION",
    i.indoption[(k.ordinal - 1)::int] AS "SORT_TYPE"
FROM pg_index i
JOIN pg_class c ON c.oid = i.indrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
JOIN pg_class ic ON ic.oid = i.indexrelid
CROSS JOIN LATERAL unnest(i.indkey::int2[]) WITH ORDINALITY AS k(attnum, ordinal)
LEFT JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
WHERE n.nspname = %s
  AND c.relname = %s
"""


def pg_sql_type(udt_name: str) -> int:
    """Map a PostgreSQL udt_name to an SQL type code."""
    if udt_name.startswith("_"):
        return SqlType.ARRAY
    return PG_SQL_TYPES.get(udt_name, SqlType.OTHER)


class PostgresIntrospector:
    """Introspect PostgreSQL catalogs through a ConnectionProvider."""

    default_identifier_case = "lower"

    def __init__(self, connections: ConnectionProvider, quote_identifiers: bool = False):
        """
        Initialize introspector.

        Args:
            connections: Source of psycopg connections
            quote_identifiers: Quote schema/table names in the shape projection
        """
        self.connections = connections
        self.quote_identifiers = quote_identifiers

    def _fetch(self, query: Any, params: Optional[tuple] = None) -> list[dict[str, Any]]:
        start = time.perf_counter()
        with self.connections.connection() as conn:
            try:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
            except psycopg.Error:
                self._recover(conn)
                raise
        logger.debug(f"Introspection query returned {len(rows)} row(s) in {_elapsed_ms(start)}ms")
        return rows

    @staticmethod
    def _recover(conn: psycopg.Connection) -> None:
        # An aborted transaction would fail every later query on a shared connection
        if conn.info.transaction_status == pq.TransactionStatus.INERROR:
            conn.rollback()

    def _table_ref(self, schema: Optional[str], table: str) -> sql.Composable:
        if self.quote_identifiers:
            if schema:
                return sql.Identifier(schema, table)
            return sql.Identifier(table)
        if schema:
            return sql.SQL(f"{schema}.{table}")
        return sql.SQL(table)

    def list_schemas(self) -> list[str]:
        rows = self._fetch(
            "SELECT schema_name FROM information_schema.schemata ORDER BY schema_name"
        )
        return [row["schema_name"] for row in rows]

    def schema_exists(self, name: str) -> bool:
        rows = self._fetch(
            "SELECT EXISTS(SELECT 1 FROM information_schema.schemata WHERE schema_name = %s)"
            " AS present",
            (name,),
        )
        return bool(rows[0]["present"])

    def list_tables(self, schema: str) -> list[str]:
        rows = self._fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (schema,),
        )
        return [row["table_name"] for row in rows]

    def column_shapes(self, schema: Optional[str], table: str) -> list[ColumnShape]:
        """
        Get column shapes from a zero-row projection of the table.

        Column order and names come from the empty result set; nullability,
        identity and precision come from information_schema.columns.
        """
        query = sql.SQL("SELECT * FROM {} WHERE 1 <> 1").format(self._table_ref(schema, table))
        start = time.perf_counter()
        with self.connections.connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query)
                    names = [col.name for col in cur.description or []]
            except psycopg.Error:
                self._recover(conn)
                raise
        logger.debug(f"Projection of {table} took {_elapsed_ms(start)}ms")

        details = {
            row["column_name"]: row
            for row in self._fetch(
                """
                SELECT
                    column_name,
                    udt_name,
                    is_nullable,
                    is_identity,
                    column_default,
                    numeric_precision,
                    numeric_scale,
                    character_maximum_length
                FROM information_schema.columns
                WHERE table_schema = COALESCE(%s, current_schema())
                  AND table_name = %s
                """,
                (schema, table),
            )
        }

        shapes = []
        for name in names:
            row = details.get(name, {})
            udt_name = row.get("udt_name") or "unknown"
            default = row.get("column_default") or ""
            shapes.append(
                ColumnShape(
                    name=name,
                    sql_type=pg_sql_type(udt_name),
                    sql_type_name=udt_name,
                    precision=row.get("numeric_precision")
                    or row.get("character_maximum_length")
                    or 0,
                    scale=row.get("numeric_scale") or 0,
                    nullable=row.get("is_nullable", "YES") == "YES",
                    auto_increment=row.get("is_identity") == "YES"
                    or default.startswith("nextval("),
                )
            )
        return shapes

    def primary_key_columns(self, schema: Optional[str], table: str) -> list[str]:
        rows = self._fetch(
            """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
              AND tc.table_schema = kcu.table_schema
              AND tc.table_name = kcu.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = COALESCE(%s, current_schema())
              AND tc.table_name = %s
            ORDER BY kcu.ordinal_position
            """,
            (schema, table),
        )
        return [row["column_name"] for row in rows]

    def imported_keys(self, schema: Optional[str], table: str) -> list[ForeignKeyRow]:
        return self._fetch(IMPORTED_KEYS_QUERY, (schema or self.current_schema(), table))

    def index_rows(self, schema: Optional[str], table: str) -> list[IndexRow]:
        return self._fetch(INDEX_ROWS_QUERY, (schema or self.current_schema(), table))

    def max_identifier_length(self) -> int:
        rows = self._fetch(
            "SELECT current_setting('max_identifier_length')::int AS max_length"
        )
        return rows[0]["max_length"]

    def product_name(self) -> str:
        with self.connections.connection() as conn:
            return conn.info.vendor

    def product_version(self) -> Optional[str]:
        rows = self._fetch("SELECT current_setting('server_version') AS version")
        return rows[0]["version"]

    def current_schema(self) -> Optional[str]:
        rows = self._fetch("SELECT current_schema() AS name")
        return rows[0]["name"]


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
