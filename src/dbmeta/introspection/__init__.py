"""Introspection port and database adapters."""

from dbmeta.introspection.port import ColumnShape, IntrospectionPort
from dbmeta.introspection.postgres import PostgresIntrospector

__all__ = ["ColumnShape", "IntrospectionPort", "PostgresIntrospector"]
