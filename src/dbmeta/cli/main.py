"""CLI commands for dbmeta."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click
import psycopg

from dbmeta.collector import MetadataCollector
from dbmeta.config import CollectorSettings, Config
from dbmeta.exceptions import MetadataError
from dbmeta.models import Schema, Table
from dbmeta.observer import LoggingProgressObserver
from dbmeta.sequences import PostgresSequenceStrategy


@contextmanager
def open_collector(url: str, settings: CollectorSettings) -> Iterator[MetadataCollector]:
    """
    Open a PostgreSQL-backed collector for a connection URL.

    A single worker shares one connection, closed on exit; parallel
    collection opens a connection per introspection call instead.
    """
    connection = None
    if settings.parallelism > 1:
        source = {"connection_factory": lambda: psycopg.connect(url, autocommit=True)}
    else:
        connection = psycopg.connect(url, autocommit=True)
        source = {"connection": connection}

    try:
        with MetadataCollector(
            **source,
            settings=settings,
            sequence_strategy=PostgresSequenceStrategy(),
            observer=LoggingProgressObserver(level=logging.DEBUG),
        ) as collector:
            yield collector
    finally:
        if connection is not None:
            connection.close()


def _load_config(config_path: Optional[str]) -> Config:
    if config_path:
        return Config.from_toml(Path(config_path))
    return Config.find_and_load()


def _resolve_url(url: Optional[str], config: Config) -> str:
    resolved = url or config.database.url
    if not resolved:
        click.echo(
            "Error: no database URL (use --url, DBMETA_DATABASE_URL or dbmeta.toml)",
            err=True,
        )
        sys.exit(1)
    return resolved


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_table(table: Table, indent: str = "  ") -> None:
    pk = ", ".join(table.primary_key.column_names) if table.primary_key else "-"
    click.echo(f"{indent}{table.name} ({table.columns_count} columns, PK: {pk})")
    for column in table.foreign_key_columns:
        click.echo(f"{indent}  {column.name} -> {column.foreign_key}")


def _echo_schema(schema: Schema) -> None:
    click.echo(f"{schema}")
    for table in schema.tables:
        _echo_table(table)
    for sequence in schema.sequences:
        click.echo(f"  sequence {sequence.name} (increment {sequence.increment_by})")


@click.group()
@click.version_option(package_name="dbmeta")
def cli() -> None:
    """dbmeta - Relational database metadata collector."""
    pass


@cli.command()
@click.option("--url", help="Database URL (default: DBMETA_DATABASE_URL or dbmeta.toml)")
@click.option("--schema", "schemas", multiple=True, help="Schema to collect (repeatable)")
@click.option("--exclude-schema", "excluded", multiple=True, help="Schema to skip (repeatable)")
@click.option("--parallelism", type=int, help="Worker threads")
@click.option("--skip-indexes", is_flag=True, help="Do not collect indexes")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to dbmeta.toml")
@click.option("--verbose", "-v", is_flag=True, help="Log collection progress")
def inspect(
    url: Optional[str],
    schemas: tuple[str, ...],
    excluded: tuple[str, ...],
    parallelism: Optional[int],
    skip_indexes: bool,
    config_path: Optional[str],
    verbose: bool,
) -> None:
    """Collect database metadata and print a schema/table tree."""
    _setup_logging(verbose)
    config = _load_config(config_path)
    url = _resolve_url(url, config)

    update: dict = {}
    if schemas:
        update["include_schemas"] = list(schemas)
    if excluded:
        update["exclude_schemas"] = list(config.collector.exclude_schemas) + list(excluded)
    if parallelism is not None:
        if parallelism < 1:
            click.echo("Error: --parallelism must be at least 1", err=True)
            sys.exit(1)
        update["parallelism"] = parallelism
    if skip_indexes:
        update["skip_indexes"] = True
    settings = config.collector.model_copy(update=update)

    try:
        with open_collector(url, settings) as collector:
            database = collector.collect_database()
    except (MetadataError, psycopg.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    version = f" {database.product_version}" if database.product_version else ""
    click.echo(f"{database.product_name}{version}")
    for schema in database.schemas:
        _echo_schema(schema)


@cli.command()
@click.argument("name")
@click.option("--schema", help="Schema of the table (default: current schema)")
@click.option("--url", help="Database URL (default: DBMETA_DATABASE_URL or dbmeta.toml)")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to dbmeta.toml")
@click.option("--verbose", "-v", is_flag=True, help="Log collection progress")
def table(
    name: str,
    schema: Optional[str],
    url: Optional[str],
    config_path: Optional[str],
    verbose: bool,
) -> None:
    """Collect one table and print its columns, keys and indexes."""
    _setup_logging(verbose)
    config = _load_config(config_path)
    url = _resolve_url(url, config)

    try:
        with open_collector(url, config.collector) as collector:
            found = collector.collect_table(name, schema)
    except (MetadataError, psycopg.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Table: {found.full_name}")
    click.echo("Columns:")
    for column in found.columns:
        flags = []
        if column.primary_key:
            flags.append("PK")
        if not column.nullable:
            flags.append("NOT NULL")
        if column.auto_increment:
            flags.append("AUTO")
        if column.foreign_key is not None:
            flags.append(f"FK -> {column.foreign_key}")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"  {column.name}: {column.sql_type_name}{suffix}")

    if found.indexes:
        click.echo("Indexes:")
        for index in found.indexes:
            unique = " UNIQUE" if index.unique else ""
            click.echo(f"  {index}{unique}")


if __name__ == "__main__":
    cli()
