"""Metadata collector: schema, table and foreign-key discovery with memoization."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor
from functools import partial
from typing import Any, Optional

from dbmeta.cache import SingleFlightCache
from dbmeta.concurrency import CancellationToken, WorkerPool, check_cancelled
from dbmeta.config import CollectorSettings
from dbmeta.connections import ConnectionProvider
from dbmeta.exceptions import (
    CollectionCancelledError,
    CollectionError,
    MetadataError,
    SchemaNotFoundError,
    TableCollectionError,
)
from dbmeta.introspection import port as labels
from dbmeta.introspection.port import IntrospectionPort
from dbmeta.introspection.postgres import PostgresIntrospector
from dbmeta.models import (
    Column,
    Database,
    ForeignKey,
    Index,
    IndexColumn,
    PrimaryKey,
    Schema,
    Sequence,
    Table,
    qualified_name,
)
from dbmeta.observer import ProgressObserver
from dbmeta.sequences import NoSequenceStrategy, SequenceStrategy
from dbmeta.sqltypes import ReferentialAction

logger = logging.getLogger(__name__)

TableKey = tuple[Optional[str], str]

_TRUE_STRINGS = {"TRUE", "T", "YES", "Y", "1"}


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _as_bool(value: Any) -> bool:
    """Interpret driver booleans, some of which arrive as strings ('FALSE')."""
    if isinstance(value, str):
        return value.strip().upper() in _TRUE_STRINGS
    return bool(value)


def _as_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _key(table: Table) -> TableKey:
    return (table.schema_name, table.name)


class MetadataCollector:
    """
    Collect database metadata into a cross-referenced catalog.

    One collector instance is one collection session: every table is
    introspected at most once and each qualified table name maps to a single
    Table object for the collector's lifetime, whichever path reached it
    (direct call, schema collection or a foreign key).

    Example:
        >>> with MetadataCollector(psycopg.connect(url)) as collector:
        ...     db = collector.collect_database(lambda s: s != "information_schema")
        ...     employee = collector.collect_table("employee", "hr")
    """

    def __init__(
        self,
        connection: Optional[Any] = None,
        *,
        connection_factory: Optional[Callable[[], Any]] = None,
        release: Optional[Callable[[Any], None]] = None,
        settings: Optional[CollectorSettings] = None,
        introspector: Optional[Callable[..., IntrospectionPort]] = None,
        sequence_strategy: Optional[SequenceStrategy] = None,
        observer: Optional[ProgressObserver] = None,
        schema_filter: Optional[Callable[[str], bool]] = None,
        skip_tables: Optional[Callable[[str, str], bool]] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize collector.

        Args:
            connection: Shared connection (mutually exclusive with connection_factory)
            connection_factory: Callable opening a connection per introspection call
            release: How to give back factory connections (default: close them)
            settings: Collector options
            introspector: Factory `(connections, quote_identifiers=...) -> port`,
                PostgresIntrospector by default
            sequence_strategy: Vendor sequence discovery (default: NoSequenceStrategy)
            observer: Progress observer
            schema_filter: Default schema predicate for collect_database
                (overrides the settings' include/exclude lists)
            skip_tables: Predicate `(schema, table) -> bool` for tables to skip
                (overrides the settings' skip_table_patterns)
            executor: Caller-owned executor for parallel tasks

        Raises:
            ConnectionUnavailableError: Unless exactly one of connection and
                connection_factory is given
        """
        self.settings = settings or CollectorSettings()
        self.connections = ConnectionProvider(connection, connection_factory, release)
        introspector = introspector or PostgresIntrospector
        self.port: IntrospectionPort = introspector(
            self.connections, quote_identifiers=self.settings.quote_identifiers
        )
        self.sequence_strategy = sequence_strategy or NoSequenceStrategy()
        self.observer = observer or ProgressObserver()
        self._schema_filter = schema_filter or self.settings.schema_filter()
        self._skip_tables = skip_tables or self.settings.skip_tables()
        self._pool = WorkerPool(self.settings.parallelism, executor)

        self._schema_lock = threading.Lock()
        self._all_schema_names: Optional[list[str]] = None
        self._existing_schemas: set[str] = set()

        self._lookups: SingleFlightCache[str, Any] = SingleFlightCache()
        self._table_names: SingleFlightCache[str, list[str]] = SingleFlightCache()
        self._schemas: SingleFlightCache[str, Schema] = SingleFlightCache()
        self._tables: SingleFlightCache[TableKey, Table] = SingleFlightCache()

        self._link_lock = threading.Lock()
        self._linked: set[TableKey] = set()
        self._shape_elapsed: dict[TableKey, int] = {}

    # Public operations

    def collect_database(
        self,
        schema_filter: Optional[Callable[[str], bool]] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> Database:
        """
        Collect every schema accepted by the filter.

        Args:
            schema_filter: Predicate over schema names (default: the collector's)
            token: Cancellation token / deadline

        Returns:
            Database with the collected schemas

        Raises:
            CollectionError: If schemas cannot be listed or any schema fails
                (the failing schema is named; no partial database is returned)
            CollectionCancelledError: If the token fires
        """
        start = time.perf_counter()
        check_cancelled(token)
        schema_filter = schema_filter or self._schema_filter

        try:
            all_names = self._all_schemas()
        except MetadataError:
            raise
        except Exception as exc:
            raise CollectionError("Could not list schemas", cause=exc) from exc

        names = [name for name in all_names if schema_filter(name)]
        self._notify("collection_started", names)

        tasks = [partial(self._collect_schema_of_database, name, token) for name in names]
        schemas = self._pool.run_all(tasks, token)

        product_name, product_version = self._product()
        database = Database(
            product_name=product_name,
            schemas=tuple(schemas),
            product_version=product_version,
        )

        elapsed = _elapsed_ms(start)
        logger.info(f"Database metadata collected in {elapsed}ms ({len(schemas)} schema(s))")
        self._notify("database_collected", database, elapsed)
        return database

    def collect_schema(self, name: str, *, token: Optional[CancellationToken] = None) -> Schema:
        """
        Collect one schema with its tables and sequences (cached).

        Args:
            name: Schema name; folded to the database's identifier case unless
                it is already a known schema name
            token: Cancellation token / deadline

        Returns:
            The cached Schema for this name

        Raises:
            SchemaNotFoundError: If the schema does not exist
            TableCollectionError: If one of its tables cannot be collected
            CollectionError: If schema-level introspection fails
        """
        check_cancelled(token)
        schema_name = self._resolve_schema_name(name)
        return self._schemas.get_or_compute(
            schema_name, partial(self._build_schema, schema_name, token), token
        )

    def collect_table(
        self,
        name: str,
        schema: Optional[str] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> Table:
        """
        Collect one table with its foreign keys linked (cached).

        Concurrent calls for the same qualified name share one introspection
        round-trip and receive the same object.

        Args:
            name: Table name
            schema: Schema name (default: settings.default_schema, then the
                connection's current schema)
            token: Cancellation token / deadline

        Returns:
            The cached Table for this qualified name

        Raises:
            TableCollectionError: If introspection of this table, or of a table
                it references, fails
        """
        check_cancelled(token)
        if schema is None:
            schema_name = self._default_schema()
        else:
            schema_name = self._resolve_schema_name(schema)
        table = self._table_skeleton(name, schema_name, token)
        self._link(table, token)
        return table

    def cached_tables(self) -> list[Table]:
        """Tables collected so far by this collector."""
        return self._tables.values()

    def close(self) -> None:
        """Release the internal worker pool."""
        self._pool.close()

    def __enter__(self) -> MetadataCollector:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Schemas

    def _all_schemas(self) -> list[str]:
        with self._schema_lock:
            if self._all_schema_names is None:
                start = time.perf_counter()
                names = list(self.port.list_schemas())
                self._all_schema_names = names
                self._existing_schemas.update(names)
                logger.debug(f"All schema names found in {_elapsed_ms(start)}ms")
            return list(self._all_schema_names)

    def _identifier_case(self) -> str:
        return (
            self.settings.identifier_case
            or getattr(self.port, "default_identifier_case", None)
            or "upper"
        )

    def _normalize(self, name: str) -> str:
        case = self._identifier_case()
        if case == "upper":
            return name.upper()
        if case == "lower":
            return name.lower()
        return name

    def _resolve_schema_name(self, name: str) -> str:
        with self._schema_lock:
            if name in self._existing_schemas:
                return name
        return self._normalize(name)

    def _schema_exists(self, name: str) -> bool:
        with self._schema_lock:
            if name in self._existing_schemas:
                return True

        start = time.perf_counter()
        try:
            exists = self.port.schema_exists(name)
        except MetadataError:
            raise
        except Exception as exc:
            raise CollectionError("Could not check schema existence", schema=name, cause=exc) from exc
        logger.debug(f"Schema existence check took {_elapsed_ms(start)}ms")

        if exists:
            with self._schema_lock:
                self._existing_schemas.add(name)
        return exists

    def _tables_of(self, schema: str) -> list[str]:
        def fetch() -> list[str]:
            try:
                return list(self.port.list_tables(schema))
            except MetadataError:
                raise
            except Exception as exc:
                raise CollectionError("Could not list tables", schema=schema, cause=exc) from exc

        return list(self._table_names.get_or_compute(schema, fetch))

    def _collect_schema_of_database(
        self, name: str, token: Optional[CancellationToken]
    ) -> Schema:
        try:
            return self.collect_schema(name, token=token)
        except CollectionCancelledError:
            raise
        except Exception as exc:
            raise CollectionError("Schema collection failed", schema=name, cause=exc) from exc

    def _build_schema(self, name: str, token: Optional[CancellationToken]) -> Schema:
        logger.info(f"Collecting metadata for schema: {name}")
        start = time.perf_counter()

        if not self._schema_exists(name):
            raise SchemaNotFoundError(name)

        check_cancelled(token)
        table_names = [t for t in self._tables_of(name) if not self._skip_tables(name, t)]
        tasks = [partial(self.collect_table, t, name, token=token) for t in table_names]
        tables = self._pool.run_all(tasks, token)

        schema = Schema(
            name=name,
            tables=tuple(tables),
            sequences=tuple(self._collect_sequences(name)),
        )

        elapsed = _elapsed_ms(start)
        logger.info(f"Schema {name} metadata collected in {elapsed}ms ({len(tables)} table(s))")
        self._notify("schema_collected", schema, elapsed)
        return schema

    def _collect_sequences(self, schema: str) -> list[Sequence]:
        if self.settings.skip_sequences:
            return []
        try:
            return list(self.sequence_strategy.collect_sequences(schema, self.connections))
        except MetadataError:
            raise
        except Exception as exc:
            raise CollectionError("Could not collect sequences", schema=schema, cause=exc) from exc

    # Database-level lookups, each queried once

    def _once(self, key: str, compute: Callable[[], Any]) -> Any:
        return self._lookups.get_or_compute(key, compute)

    def _product(self) -> tuple[Optional[str], Optional[str]]:
        try:
            return self._once(
                "product", lambda: (self.port.product_name(), self.port.product_version())
            )
        except MetadataError:
            raise
        except Exception as exc:
            raise CollectionError("Could not read database product information", cause=exc) from exc

    def _default_schema(self) -> Optional[str]:
        if self.settings.default_schema is not None:
            return self._resolve_schema_name(self.settings.default_schema)
        try:
            return self._once("current_schema", self.port.current_schema)
        except MetadataError:
            raise
        except Exception as exc:
            raise CollectionError("Could not determine current schema", cause=exc) from exc

    def _max_identifier_length(self) -> int:
        return self._once("max_identifier_length", self.port.max_identifier_length)

    def _label(self, name: str) -> str:
        """Truncate a synthetic row label the way the driver truncates aliases."""
        max_length = self._max_identifier_length()
        if 0 < max_length < len(name):
            return name[:max_length]
        return name

    # Tables

    def _table_skeleton(
        self, name: str, schema: Optional[str], token: Optional[CancellationToken]
    ) -> Table:
        return self._tables.get_or_compute(
            (schema, name), partial(self._build_table, name, schema, token), token
        )

    def _build_table(
        self, name: str, schema: Optional[str], token: Optional[CancellationToken]
    ) -> Table:
        start = time.perf_counter()
        full_name = qualified_name(schema, name)
        logger.debug(f"Collecting metadata for table: {full_name}")

        try:
            check_cancelled(token)
            shapes = self.port.column_shapes(schema, name)
            check_cancelled(token)
            primary_keys = list(self.port.primary_key_columns(schema, name))
            check_cancelled(token)
            foreign_keys = self._foreign_keys(schema, name)
            indexes: list[Index] = []
            if not self.settings.skip_indexes:
                check_cancelled(token)
                indexes = self._indexes(schema, name)
        except MetadataError:
            raise
        except Exception as exc:
            raise TableCollectionError(schema, name, exc) from exc

        columns = [
            Column(
                name=shape.name,
                table_name=name,
                sql_type=shape.sql_type,
                sql_type_name=shape.sql_type_name,
                nullable=shape.nullable,
                auto_increment=shape.auto_increment,
                precision=shape.precision,
                scale=shape.scale,
                primary_key=shape.name in primary_keys,
                foreign_key=foreign_keys.get(shape.name),
                indexes=tuple(i for i in indexes if i.is_for_column(shape.name)),
            )
            for shape in shapes
        ]

        primary_key = None
        if primary_keys:
            by_name = {c.name: c for c in columns}
            key_columns = tuple(by_name[n] for n in primary_keys if n in by_name)
            if key_columns:
                primary_key = PrimaryKey(columns=key_columns)

        table = Table(
            name=name,
            schema_name=schema,
            columns=tuple(columns),
            primary_key=primary_key,
            indexes=tuple(indexes),
        )

        elapsed = _elapsed_ms(start)
        logger.info(f"Table {full_name} metadata collected in {elapsed}ms")
        with self._link_lock:
            self._shape_elapsed[(schema, name)] = elapsed
        return table

    def _foreign_keys(self, schema: Optional[str], table: str) -> dict[str, ForeignKey]:
        """Imported keys of a table, keyed by local column name."""
        start = time.perf_counter()
        fk_name_label = self._label(labels.FK_NAME)
        keys: dict[str, ForeignKey] = {}

        for row in self.port.imported_keys(schema, table):
            keys[row[labels.FKCOLUMN_NAME]] = ForeignKey(
                name=row.get(fk_name_label),
                foreign_schema=row.get(labels.PKTABLE_SCHEM) or schema,
                foreign_table_name=row[labels.PKTABLE_NAME],
                foreign_column=row[labels.PKCOLUMN_NAME],
                update_rule=ReferentialAction.from_code(row.get(labels.UPDATE_RULE)),
                delete_rule=ReferentialAction.from_code(row.get(labels.DELETE_RULE)),
            )

        logger.debug(f"Foreign keys for table {table} found. Took {_elapsed_ms(start)}ms")
        return keys

    def _indexes(self, schema: Optional[str], table: str) -> list[Index]:
        """Group per-column index rows into Index objects."""
        indexes: dict[str, Index] = {}

        for row in self.port.index_rows(schema, table):
            index_name = row.get(labels.INDEX_NAME)
            column_name = row.get(labels.COLUMN_NAME)
            if index_name is None or column_name is None:
                # Statistics rows and expression columns carry no column name
                continue

            column = IndexColumn(
                name=column_name,
                ordinal_position=_as_int(row.get(labels.ORDINAL_POSITION)) or 0,
                ascending=row.get(labels.ASC_OR_DESC) == "A",
                sort_type=_as_int(row.get(labels.SORT_TYPE)),
            )
            index = indexes.get(index_name)
            if index is None:
                index = Index(
                    name=index_name,
                    unique=not _as_bool(row.get(labels.NON_UNIQUE)),
                    index_type=_as_int(row.get(labels.TYPE)),
                    cardinality=_as_int(row.get(labels.CARDINALITY)),
                    pages=_as_int(row.get(labels.PAGES)),
                )
            indexes[index_name] = index.with_column(column)

        return list(indexes.values())

    def _link(self, root: Table, token: Optional[CancellationToken]) -> None:
        """
        Attach target tables to every foreign key reachable from `root`.

        Skeletons are published before linking, so a cycle or self-reference
        finds the existing object. Linking never waits on another table's
        linking, only on skeleton collection, which cannot deadlock.

        Observers hear about a table once, when its foreign keys are linked.
        """
        with self._link_lock:
            if _key(root) in self._linked:
                return

        visited = {_key(root): root}
        stack = [root]
        while stack:
            table = stack.pop()
            for fk in table.foreign_keys:
                target = fk.foreign_table
                if target is None:
                    target = self._table_skeleton(fk.foreign_table_name, fk.foreign_schema, token)
                    fk.link(target)
                target_key = _key(target)
                if target_key in visited:
                    continue
                visited[target_key] = target
                with self._link_lock:
                    done = target_key in self._linked
                if not done:
                    stack.append(target)

        with self._link_lock:
            linked_now = [t for k, t in visited.items() if k not in self._linked]
            self._linked.update(visited)
            timings = [self._shape_elapsed.pop(_key(t), 0) for t in linked_now]

        for table, elapsed in zip(linked_now, timings):
            self._notify("table_collected", table, elapsed)

    # Observer

    def _notify(self, event: str, *args: Any) -> None:
        try:
            getattr(self.observer, event)(*args)
        except Exception:
            logger.warning(f"Progress observer failed on {event}", exc_info=True)
