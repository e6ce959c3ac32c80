"""
dbmeta - Relational database metadata collector

Collects schemas, tables, columns, keys, indexes and sequences into an
immutable, cross-referenced catalog, with memoized and parallel collection.
"""

from dbmeta.collector import MetadataCollector
from dbmeta.concurrency import CancellationToken
from dbmeta.config import CollectorSettings, Config
from dbmeta.exceptions import (
    CollectionCancelledError,
    CollectionError,
    ConnectionUnavailableError,
    MetadataError,
    SchemaNotFoundError,
    TableCollectionError,
)
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
)
from dbmeta.observer import LoggingProgressObserver, ProgressObserver
from dbmeta.sequences import PostgresSequenceStrategy, SequenceStrategy

__version__ = "0.1.0"

__all__ = [
    "MetadataCollector",
    "CancellationToken",
    "CollectorSettings",
    "Config",
    "Database",
    "Schema",
    "Table",
    "Column",
    "PrimaryKey",
    "ForeignKey",
    "Index",
    "IndexColumn",
    "Sequence",
    "ProgressObserver",
    "LoggingProgressObserver",
    "SequenceStrategy",
    "PostgresSequenceStrategy",
    "MetadataError",
    "SchemaNotFoundError",
    "TableCollectionError",
    "ConnectionUnavailableError",
    "CollectionError",
    "CollectionCancelledError",
]
