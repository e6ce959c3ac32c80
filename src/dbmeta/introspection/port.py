"""
Introspection port.

The collector talks to the database only through this interface. Row-shaped
results (imported keys, index rows) are mappings keyed by the labels below;
the collector reads them through labels truncated to the database's maximum
identifier length, since some drivers truncate long aliases.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

ForeignKeyRow = Mapping[str, Any]
IndexRow = Mapping[str, Any]

# Imported-key row labels
PKTABLE_SCHEM = "PKTABLE_SCHEM"
PKTABLE_NAME = "PKTABLE_NAME"
PKCOLUMN_NAME = "PKCOLUMN_NAME"
FKCOLUMN_NAME = "FKCOLUMN_NAME"
KEY_SEQ = "KEY_SEQ"
UPDATE_RULE = "UPDATE_RULE"
DELETE_RULE = "DELETE_RULE"
FK_NAME = "FK_NAME"

# Index row labels
INDEX_NAME = "INDEX_NAME"
NON_UNIQUE = "NON_UNIQUE"
TYPE = "TYPE"
CARDINALITY = "CARDINALITY"
PAGES = "PAGES"
COLUMN_NAME = "COLUMN_NAME"
ASC_OR_DESC = "ASC_OR_DESC"
ORDINAL_POSITION = "ORDINAL_POSITION"
SORT_TYPE = "SORT_TYPE"


@dataclass(frozen=True)
class ColumnShape:
    """
    Shape of one result-set column, as reported without reading row data.

    Attributes:
        name: Column name
        sql_type: SQL type code (see dbmeta.sqltypes.SqlType)
        sql_type_name: Vendor type name
        precision: Declared precision or length, 0 if not applicable
        scale: Declared scale, 0 if not applicable
        nullable: Whether NULL is allowed
        auto_increment: Whether the database generates values
    """

    name: str
    sql_type: int
    sql_type_name: str
    precision: int = 0
    scale: int = 0
    nullable: bool = True
    auto_increment: bool = False


@runtime_checkable
class IntrospectionPort(Protocol):
    """Database metadata queries the collector depends on."""

    # "upper", "lower" or "preserve": how the database folds unquoted names
    default_identifier_case: str

    def list_schemas(self) -> list[str]: ...

    def schema_exists(self, name: str) -> bool: ...

    def list_tables(self, schema: str) -> list[str]: ...

    def column_shapes(self, schema: Optional[str], table: str) -> list[ColumnShape]: ...

    def primary_key_columns(self, schema: Optional[str], table: str) -> list[str]: ...

    def imported_keys(self, schema: Optional[str], table: str) -> list[ForeignKeyRow]: ...

    def index_rows(self, schema: Optional[str], table: str) -> list[IndexRow]: ...

    def max_identifier_length(self) -> int: ...

    def product_name(self) -> str: ...

    def product_version(self) -> Optional[str]: ...

    def current_schema(self) -> Optional[str]: ...
