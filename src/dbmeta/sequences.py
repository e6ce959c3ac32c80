"""Pluggable, vendor-specific sequence discovery."""

from typing import Protocol, runtime_checkable

from psycopg.rows import dict_row

from dbmeta.connections import ConnectionProvider
from dbmeta.models import Sequence


@runtime_checkable
class SequenceStrategy(Protocol):
    """
    Vendor-specific sequence discovery.

    Implement this for databases whose sequences should be part of the
    catalog and pass the instance to MetadataCollector(sequence_strategy=...).

    Example:
        >>> class OracleSequences:
        ...     def collect_sequences(self, schema, connections):
        ...         with connections.connection() as conn:
        ...             cur = conn.cursor()
        ...             cur.execute(
        ...                 "SELECT sequence_name, increment_by FROM all_sequences"
        ...                 " WHERE sequence_owner = :owner", owner=schema)
        ...             return [Sequence(n, schema, inc) for n, inc in cur]
    """

    def collect_sequences(self, schema: str, connections: ConnectionProvider) -> list[Sequence]:
        """
        Get all sequences of a schema.

        Args:
            schema: Normalized schema name
            connections: Provider in the collector's single acquisition mode
                (shared connection or factory)

        Returns:
            Sequence metadata, in any order
        """
        ...


class NoSequenceStrategy:
    """Default strategy: sequence collection disabled."""

    def collect_sequences(self, schema: str, connections: ConnectionProvider) -> list[Sequence]:
        return []


class PostgresSequenceStrategy:
    """Read sequences from pg_sequences (PostgreSQL 10+)."""

    def collect_sequences(self, schema: str, connections: ConnectionProvider) -> list[Sequence]:
        with connections.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT sequencename, increment_by
                    FROM pg_sequences
                    WHERE schemaname = %s
                    ORDER BY sequencename
                    """,
                    (schema,),
                )
                rows = cur.fetchall()

        return [
            Sequence(name=row["sequencename"], schema=schema, increment_by=row["increment_by"])
            for row in rows
        ]
