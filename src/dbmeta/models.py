"""
Catalog data model.

Defines the entity graph produced by the collector:
Database -> Schema -> Table -> Column / Index / PrimaryKey, and
Column -> ForeignKey -> Table. Entities are frozen once built; the only
deferred piece is the target table of a ForeignKey, attached after the target's
skeleton has been published so cyclic and self-referencing keys can be linked.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Optional

from dbmeta.sqltypes import ReferentialAction, SqlType, ValueKind, python_type, value_kind


def qualified_name(schema: Optional[str], name: str) -> str:
    """Join a schema and an object name (`schema.name`, or `name` without schema)."""
    if schema:
        return f"{schema}.{name}"
    return name


@dataclass(frozen=True)
class IndexColumn:
    """One column of an index, at its ordinal position inside the index."""

    name: str
    ordinal_position: int
    ascending: bool = True
    sort_type: Optional[int] = None

    def name_is(self, name: str) -> bool:
        return self.name == name


@dataclass(frozen=True)
class Index:
    """
    Index metadata.

    Columns are always kept sorted by ordinal position, whatever order they
    were supplied or appended in.

    Attributes:
        name: Index name
        unique: Whether the index enforces uniqueness
        index_type: Vendor index type code
        cardinality: Number of unique values (statistics, best-effort)
        pages: Number of pages used (statistics, best-effort)
        columns: Index columns ordered by ordinal position
    """

    name: str
    unique: bool = False
    index_type: Optional[int] = None
    cardinality: Optional[int] = None
    pages: Optional[int] = None
    columns: tuple[IndexColumn, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.columns, key=lambda c: c.ordinal_position))
        object.__setattr__(self, "columns", ordered)

    def with_column(self, column: IndexColumn) -> Index:
        """Return a copy of this index with one more column, re-sorted."""
        return replace(self, columns=self.columns + (column,))

    @property
    def is_multi_column(self) -> bool:
        return len(self.columns) > 1

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def is_for_column(self, column_name: str) -> bool:
        """Check if the column participates in this index."""
        return any(c.name_is(column_name) for c in self.columns)

    def index_column(self, name: str) -> Optional[IndexColumn]:
        for column in self.columns:
            if column.name_is(name):
                return column
        return None

    def name_is(self, name: str) -> bool:
        return self.name == name

    def __str__(self) -> str:
        return f"{self.name}[{','.join(self.column_names)}]"


@dataclass(frozen=True)
class ForeignKey:
    """
    Foreign key constraint imported by a column.

    The target table is attached after construction, once the collector has
    published the target's skeleton.

    Attributes:
        name: Constraint name (may be None when the database does not report it)
        foreign_schema: Schema of the referenced table
        foreign_table_name: Referenced table
        foreign_column: Referenced column
        update_rule: Action applied on update of the referenced key
        delete_rule: Action applied on delete of the referenced key
    """

    name: Optional[str]
    foreign_schema: Optional[str]
    foreign_table_name: str
    foreign_column: str
    update_rule: Optional[ReferentialAction] = None
    delete_rule: Optional[ReferentialAction] = None
    _foreign_table: Optional[Table] = field(
        default=None, init=False, repr=False, compare=False
    )

    @property
    def foreign_table(self) -> Optional[Table]:
        """Referenced table, or None before the key has been linked."""
        return self._foreign_table

    @property
    def is_resolved(self) -> bool:
        return self._foreign_table is not None

    @property
    def foreign_full_name(self) -> str:
        return qualified_name(self.foreign_schema, self.foreign_table_name)

    def references(self, schema: Optional[str], table_name: str) -> bool:
        """Check if this key points at the given qualified table."""
        return self.foreign_schema == schema and self.foreign_table_name == table_name

    def link(self, table: Table) -> None:
        """
        Attach the referenced table.

        Linking is idempotent for the same table object.

        Raises:
            ValueError: If the table's qualified name does not match the key's
                target, or a different table object is already attached
        """
        if not self.references(table.schema_name, table.name):
            raise ValueError(
                f"Foreign key {self.name!r} targets {self.foreign_full_name}, "
                f"cannot link it to {table.full_name}"
            )
        current = self._foreign_table
        if current is not None and current is not table:
            raise ValueError(
                f"Foreign key {self.name!r} is already linked to another "
                f"instance of {table.full_name}"
            )
        object.__setattr__(self, "_foreign_table", table)

    def __str__(self) -> str:
        return f"{self.foreign_full_name}->{self.foreign_column}"


@dataclass(frozen=True)
class Column:
    """
    Column metadata from the zero-row projection of a table.

    Attributes:
        name: Column name
        table_name: Owning table name
        sql_type: SQL type code (see SqlType)
        sql_type_name: Vendor type name
        nullable: Whether the column accepts NULL
        auto_increment: Whether values are generated by the database
        precision: Declared precision (0 when not applicable)
        scale: Declared scale (0 when not applicable)
        primary_key: Whether the column is part of the primary key
        foreign_key: Imported foreign key, if any
        indexes: Indexes the column participates in
    """

    name: str
    table_name: str
    sql_type: int
    sql_type_name: str
    nullable: bool = True
    auto_increment: bool = False
    precision: int = 0
    scale: int = 0
    primary_key: bool = False
    foreign_key: Optional[ForeignKey] = None
    indexes: tuple[Index, ...] = ()

    @property
    def is_foreign_key(self) -> bool:
        return self.foreign_key is not None

    @property
    def value_kind(self) -> ValueKind:
        return value_kind(self.sql_type)

    @property
    def python_type(self) -> Optional[type]:
        return python_type(self.sql_type)

    def name_is(self, name: str) -> bool:
        return self.name == name

    def sql_type_is(self, sql_type: int) -> bool:
        return self.sql_type == sql_type

    def sql_type_name_is(self, type_name: str) -> bool:
        return self.sql_type_name == type_name

    @property
    def is_number(self) -> bool:
        return self.value_kind.is_number

    @property
    def is_string(self) -> bool:
        return self.value_kind is ValueKind.STRING

    @property
    def is_date(self) -> bool:
        return self.value_kind is ValueKind.DATE

    @property
    def is_timestamp(self) -> bool:
        return self.value_kind is ValueKind.TIMESTAMP

    @property
    def is_blob(self) -> bool:
        return self.sql_type_is(SqlType.BLOB)

    @property
    def is_clob(self) -> bool:
        return self.sql_type_is(SqlType.CLOB)

    @property
    def is_nclob(self) -> bool:
        return self.sql_type_is(SqlType.NCLOB)

    @property
    def is_large_object(self) -> bool:
        return self.is_blob or self.is_clob or self.is_nclob

    @property
    def is_varchar(self) -> bool:
        return self.sql_type in (
            SqlType.VARCHAR,
            SqlType.NVARCHAR,
            SqlType.LONGVARCHAR,
            SqlType.LONGNVARCHAR,
        )

    @property
    def has_indexes(self) -> bool:
        return len(self.indexes) > 0

    def has_index(self, name: str) -> bool:
        return self.index(name) is not None

    def index(self, name: str) -> Optional[Index]:
        for idx in self.indexes:
            if idx.name_is(name):
                return idx
        return None

    def __str__(self) -> str:
        return f"{self.table_name}->{self.name}"


@dataclass(frozen=True)
class PrimaryKey:
    """Primary key; columns are ordered by their position inside the key."""

    columns: tuple[Column, ...]

    @property
    def is_composite(self) -> bool:
        return len(self.columns) > 1

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name_is(name):
                return col
        return None


@dataclass(frozen=True, eq=False)
class Table:
    """
    Complete information about a database table.

    A collector hands out exactly one Table instance per qualified name, so
    tables compare by identity.

    Attributes:
        name: Table name
        schema_name: Owning schema
        columns: Columns in declaration order
        primary_key: Primary key, if the table has one
        indexes: Indexes defined on the table
    """

    name: str
    schema_name: Optional[str]
    columns: tuple[Column, ...] = ()
    primary_key: Optional[PrimaryKey] = None
    indexes: tuple[Index, ...] = ()

    @property
    def full_name(self) -> str:
        """Get fully qualified table name."""
        return qualified_name(self.schema_name, self.name)

    def name_is(self, name: str) -> bool:
        return self.name == name

    def same_name(self, other: Table) -> bool:
        return self.full_name == other.full_name

    # Columns

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name_is(name):
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    def has_all_columns(self, names: Iterable[str]) -> bool:
        """Check that every name is a column; False for an empty collection."""
        names = list(names)
        return bool(names) and all(self.has_column(n) for n in names)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def columns_count(self) -> int:
        return len(self.columns)

    def filter_columns(self, predicate: Callable[[Column], bool]) -> list[Column]:
        return [c for c in self.columns if predicate(c)]

    def columns_except(self, excluded: Iterable[Column]) -> list[Column]:
        excluded = list(excluded)
        return self.filter_columns(lambda c: all(c is not e for e in excluded))

    @property
    def blob_columns(self) -> list[Column]:
        return self.filter_columns(lambda c: c.is_blob)

    @property
    def has_blobs(self) -> bool:
        return bool(self.blob_columns)

    # Keys

    @property
    def has_primary_key(self) -> bool:
        return self.primary_key is not None

    @property
    def has_composite_primary_key(self) -> bool:
        return self.primary_key is not None and self.primary_key.is_composite

    def part_of_composite_key(self, column: Column) -> bool:
        """Check if the column belongs to this table's composite primary key."""
        if not self.has_composite_primary_key or column.table_name != self.name:
            return False
        return self.primary_key.column(column.name) is not None

    @property
    def foreign_key_columns(self) -> list[Column]:
        """Columns that import a foreign key, in declaration order."""
        return self.filter_columns(lambda c: c.is_foreign_key)

    @property
    def foreign_keys(self) -> list[ForeignKey]:
        return [c.foreign_key for c in self.foreign_key_columns]

    def foreign_tables_names(self) -> list[str]:
        """Names of referenced tables, one per foreign key, in column order."""
        return [fk.foreign_table_name for fk in self.foreign_keys]

    def foreign_tables(self) -> list[Table]:
        """Referenced table objects, one per linked foreign key."""
        return [fk.foreign_table for fk in self.foreign_keys if fk.is_resolved]

    def related_tables(self) -> list[str]:
        """Qualified names of referenced tables, one per foreign key."""
        return [fk.foreign_full_name for fk in self.foreign_keys]

    def foreign_keys_for_table(
        self, table: Table | str, schema: Optional[str] = None
    ) -> list[Column]:
        """
        Get the columns whose foreign keys reference a table.

        Args:
            table: Table object, or table name together with `schema`
            schema: Schema of the referenced table when `table` is a name

        Returns:
            Foreign key columns pointing at the table
        """
        if isinstance(table, Table):
            schema, table_name = table.schema_name, table.name
        else:
            table_name = table
        return self.filter_columns(
            lambda c: c.is_foreign_key and c.foreign_key.references(schema, table_name)
        )

    def depends_on(self, other: Table) -> bool:
        """Check if this table holds a foreign key to `other`."""
        return len(self.foreign_keys_for_table(other)) > 0

    def is_foreign_for(self, other: Table) -> bool:
        """Check if `other` holds a foreign key to this table."""
        return other.depends_on(self)

    def is_related_to(self, other: Table) -> bool:
        return other.depends_on(self) or self.depends_on(other)

    def has_self_reference(self) -> bool:
        return self.depends_on(self)

    # Indexes

    @property
    def has_indexes(self) -> bool:
        return len(self.indexes) > 0

    def index(self, name: str) -> Optional[Index]:
        for idx in self.indexes:
            if idx.name_is(name):
                return idx
        return None

    def has_index(self, name: str) -> bool:
        return self.index(name) is not None

    def column_indexes(self, column_name: str) -> list[Index]:
        """Indexes the named column participates in."""
        return [idx for idx in self.indexes if idx.is_for_column(column_name)]

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Sequence:
    """Sequence metadata reported by a sequence strategy."""

    name: str
    schema: Optional[str] = None
    increment_by: Optional[int] = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.schema, self.name)


@dataclass(frozen=True, eq=False)
class Schema:
    """A schema with its tables and sequences."""

    name: str
    tables: tuple[Table, ...] = ()
    sequences: tuple[Sequence, ...] = ()

    def table(self, name: str) -> Optional[Table]:
        for t in self.tables:
            if t.name_is(name):
                return t
        return None

    def has_table(self, name: str) -> bool:
        return self.table(name) is not None

    def filter_tables(self, predicate: Callable[[Table], bool]) -> list[Table]:
        return [t for t in self.tables if predicate(t)]

    @property
    def table_count(self) -> int:
        return len(self.tables)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def sequence(self, name: str) -> Optional[Sequence]:
        for seq in self.sequences:
            if seq.name == name:
                return seq
        return None

    def name_is(self, name: str) -> bool:
        return self.name == name

    def __str__(self) -> str:
        return f"{self.name}[{self.table_count}]"


@dataclass(frozen=True, eq=False)
class Database:
    """Root of the catalog: product information and collected schemas."""

    product_name: Optional[str]
    schemas: tuple[Schema, ...] = ()
    product_version: Optional[str] = None

    def schema(self, name: str) -> Optional[Schema]:
        for s in self.schemas:
            if s.name_is(name):
                return s
        return None

    def has_schema(self, name: str) -> bool:
        return self.schema(name) is not None

    @property
    def schema_names(self) -> list[str]:
        return [s.name for s in self.schemas]

    def tables(self) -> list[Table]:
        """All tables across every collected schema."""
        return [t for s in self.schemas for t in s.tables]

    def table(self, name: str, schema: str) -> Optional[Table]:
        found = self.schema(schema)
        return found.table(name) if found is not None else None
