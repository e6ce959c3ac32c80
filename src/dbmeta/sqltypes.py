"""SQL type codes, referential actions and the semantic type mapping table."""

from __future__ import annotations

import datetime
import decimal
from enum import Enum, IntEnum


class SqlType(IntEnum):
    """Standard SQL type codes (the values used by JDBC ``java.sql.Types``)."""

    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    NULL = 0
    OTHER = 1111
    JAVA_OBJECT = 2000
    DISTINCT = 2001
    STRUCT = 2002
    ARRAY = 2003
    BLOB = 2004
    CLOB = 2005
    REF = 2006
    DATALINK = 70
    BOOLEAN = 16
    ROWID = -8
    NCHAR = -15
    NVARCHAR = -9
    LONGNVARCHAR = -16
    NCLOB = 2011
    SQLXML = 2009
    REF_CURSOR = 2012
    TIME_WITH_TIMEZONE = 2013
    TIMESTAMP_WITH_TIMEZONE = 2014


class ReferentialAction(IntEnum):
    """Action applied to dependent rows when the referenced row changes.

    Values follow the imported-key rule codes reported by introspection APIs.
    """

    CASCADE = 0
    RESTRICT = 1
    SET_NULL = 2
    NO_ACTION = 3
    SET_DEFAULT = 4

    @classmethod
    def from_code(cls, code: int | None) -> ReferentialAction | None:
        """Return the action for a rule code, or None if it is missing or unknown."""
        if code is None:
            return None
        try:
            return cls(int(code))
        except ValueError:
            return None


class ValueKind(Enum):
    """Semantic kind of the values a column holds."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    BINARY = "binary"
    LARGE_OBJECT = "large_object"
    OTHER = "other"
    UNKNOWN = "unknown"

    @property
    def is_number(self) -> bool:
        return self in (ValueKind.INTEGER, ValueKind.DECIMAL, ValueKind.FLOAT)


_KIND_BY_SQL_TYPE: dict[int, ValueKind] = {
    SqlType.BIT: ValueKind.BOOLEAN,
    SqlType.BOOLEAN: ValueKind.BOOLEAN,
    SqlType.TINYINT: ValueKind.INTEGER,
    SqlType.SMALLINT: ValueKind.INTEGER,
    SqlType.INTEGER: ValueKind.INTEGER,
    SqlType.BIGINT: ValueKind.INTEGER,
    SqlType.NUMERIC: ValueKind.DECIMAL,
    SqlType.DECIMAL: ValueKind.DECIMAL,
    SqlType.FLOAT: ValueKind.FLOAT,
    SqlType.REAL: ValueKind.FLOAT,
    SqlType.DOUBLE: ValueKind.FLOAT,
    SqlType.CHAR: ValueKind.STRING,
    SqlType.VARCHAR: ValueKind.STRING,
    SqlType.LONGVARCHAR: ValueKind.STRING,
    SqlType.NCHAR: ValueKind.STRING,
    SqlType.NVARCHAR: ValueKind.STRING,
    SqlType.LONGNVARCHAR: ValueKind.STRING,
    SqlType.DATE: ValueKind.DATE,
    SqlType.TIME: ValueKind.TIME,
    SqlType.TIME_WITH_TIMEZONE: ValueKind.TIME,
    SqlType.TIMESTAMP: ValueKind.TIMESTAMP,
    SqlType.TIMESTAMP_WITH_TIMEZONE: ValueKind.TIMESTAMP,
    SqlType.BINARY: ValueKind.BINARY,
    SqlType.VARBINARY: ValueKind.BINARY,
    SqlType.LONGVARBINARY: ValueKind.BINARY,
    SqlType.BLOB: ValueKind.LARGE_OBJECT,
    SqlType.CLOB: ValueKind.LARGE_OBJECT,
    SqlType.NCLOB: ValueKind.LARGE_OBJECT,
    SqlType.OTHER: ValueKind.OTHER,
    SqlType.JAVA_OBJECT: ValueKind.OTHER,
    SqlType.ARRAY: ValueKind.OTHER,
    SqlType.STRUCT: ValueKind.OTHER,
    SqlType.SQLXML: ValueKind.OTHER,
}

_PYTHON_TYPE_BY_KIND: dict[ValueKind, type | None] = {
    ValueKind.INTEGER: int,
    ValueKind.DECIMAL: decimal.Decimal,
    ValueKind.FLOAT: float,
    ValueKind.STRING: str,
    ValueKind.BOOLEAN: bool,
    ValueKind.DATE: datetime.date,
    ValueKind.TIME: datetime.time,
    ValueKind.TIMESTAMP: datetime.datetime,
    ValueKind.BINARY: bytes,
    ValueKind.LARGE_OBJECT: None,
    ValueKind.OTHER: object,
    ValueKind.UNKNOWN: None,
}

# CLOB columns hold text, BLOB columns bytes
_LOB_PYTHON_TYPES: dict[int, type] = {
    SqlType.BLOB: bytes,
    SqlType.CLOB: str,
    SqlType.NCLOB: str,
}


def value_kind(sql_type: int | None) -> ValueKind:
    """
    Map an SQL type code to its semantic kind.

    Args:
        sql_type: Type code reported by the introspection port

    Returns:
        The matching ValueKind, ValueKind.UNKNOWN for unmapped codes
    """
    if sql_type is None:
        return ValueKind.UNKNOWN
    return _KIND_BY_SQL_TYPE.get(sql_type, ValueKind.UNKNOWN)


def python_type(sql_type: int | None) -> type | None:
    """
    Map an SQL type code to the Python type its values are read as.

    Returns:
        A Python type, or None when the code is unknown
    """
    if sql_type in _LOB_PYTHON_TYPES:
        return _LOB_PYTHON_TYPES[sql_type]
    return _PYTHON_TYPE_BY_KIND[value_kind(sql_type)]
