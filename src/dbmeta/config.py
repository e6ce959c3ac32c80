"""
Configuration management for dbmeta.

Loads and validates configuration from dbmeta.toml files and DBMETA_*
environment variables using Pydantic.
"""

from __future__ import annotations

import re
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Literal, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE_NAME = "dbmeta.toml"

IdentifierCase = Literal["upper", "lower", "preserve"]


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="DBMETA_DATABASE_")

    url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL",
    )


class CollectorSettings(BaseSettings):
    """Options recognized by MetadataCollector."""

    model_config = SettingsConfigDict(env_prefix="DBMETA_")

    include_schemas: list[str] = Field(
        default_factory=list,
        description="Schemas to collect (empty means all)",
    )
    exclude_schemas: list[str] = Field(
        default_factory=list,
        description="Schemas never collected",
    )
    skip_table_patterns: list[str] = Field(
        default_factory=list,
        description="Regexes matched against table names (or schema.table) to skip",
    )
    skip_indexes: bool = Field(default=False, description="Do not collect indexes")
    skip_sequences: bool = Field(default=False, description="Do not collect sequences")
    quote_identifiers: bool = Field(
        default=False,
        description="Quote schema and table names in introspection queries",
    )
    parallelism: int = Field(
        default=1, ge=1, description="Worker threads for schema/table collection"
    )
    identifier_case: Optional[IdentifierCase] = Field(
        default=None,
        description="Schema name folding (defaults to the database's convention)",
    )
    default_schema: Optional[str] = Field(
        default=None,
        description="Schema for tables requested without one (defaults to current schema)",
    )

    def schema_filter(self) -> Callable[[str], bool]:
        """Build the schema predicate from include/exclude lists."""
        include = set(self.include_schemas)
        exclude = set(self.exclude_schemas)

        def accept(name: str) -> bool:
            if include and name not in include:
                return False
            return name not in exclude

        return accept

    def skip_tables(self) -> Callable[[str, str], bool]:
        """Build the table-skipping predicate from skip_table_patterns."""
        patterns = [re.compile(p) for p in self.skip_table_patterns]

        def skip(schema: str, table: str) -> bool:
            full_name = f"{schema}.{table}"
            return any(p.fullmatch(table) or p.fullmatch(full_name) for p in patterns)

        return skip


class Config(BaseSettings):
    """Main configuration for dbmeta."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)

    @classmethod
    def from_toml(cls, path: Path | str) -> Config:
        """
        Load configuration from TOML file.

        Args:
            path: Path to dbmeta.toml file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(**data)

    @classmethod
    def find_and_load(cls, start_dir: Optional[Path] = None) -> Config:
        """
        Find and load configuration from dbmeta.toml.

        Searches for dbmeta.toml starting from start_dir and walking up
        parent directories until found or reaching filesystem root. Falls back
        to defaults (plus environment variables) when no file exists.

        Args:
            start_dir: Directory to start search (defaults to current directory)

        Returns:
            Config instance
        """
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()

        # Walk up directory tree
        while True:
            config_path = current / CONFIG_FILE_NAME
            if config_path.exists():
                return cls.from_toml(config_path)

            parent = current.parent
            if parent == current:
                break
            current = parent

        return cls()
