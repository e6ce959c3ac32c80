"""Progress notifications for collection telemetry and UX."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dbmeta.models import Database, Schema, Table

logger = logging.getLogger(__name__)


class ProgressObserver:
    """
    Receives collection lifecycle events.

    Every method is a no-op; subclass and override the ones you need.
    Observers never influence collection: exceptions they raise are logged
    and ignored by the collector. Table and schema events may arrive from
    worker threads.

    `table_collected` fires once per table after its foreign keys have been
    linked; `elapsed_ms` is the time spent introspecting that table.
    """

    def collection_started(self, schema_names: list[str]) -> None:
        pass

    def schema_collected(self, schema: Schema, elapsed_ms: int) -> None:
        pass

    def table_collected(self, table: Table, elapsed_ms: int) -> None:
        pass

    def database_collected(self, database: Database, elapsed_ms: int) -> None:
        pass


class LoggingProgressObserver(ProgressObserver):
    """Report progress through a logger."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self.log = log or logger
        self.level = level

    def collection_started(self, schema_names: list[str]) -> None:
        self.log.log(self.level, f"Collecting {len(schema_names)} schema(s): {', '.join(schema_names)}")

    def schema_collected(self, schema: Schema, elapsed_ms: int) -> None:
        self.log.log(self.level, f"Schema {schema} collected in {elapsed_ms}ms")

    def table_collected(self, table: Table, elapsed_ms: int) -> None:
        self.log.log(self.level, f"Table {table.full_name} collected in {elapsed_ms}ms")

    def database_collected(self, database: Database, elapsed_ms: int) -> None:
        self.log.log(
            self.level,
            f"{database.product_name} metadata collected in {elapsed_ms}ms "
            f"({len(database.schemas)} schema(s), {len(database.tables())} table(s))",
        )
