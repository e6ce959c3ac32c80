"""Custom exceptions with helpful error messages."""

from typing import Optional

from dbmeta.models import qualified_name


class MetadataError(Exception):
    """Base exception for dbmeta errors."""

    pass


class SchemaNotFoundError(MetadataError):
    """Schema does not exist in database."""

    def __init__(self, schema: str):
        self.schema = schema
        super().__init__(
            f"Schema '{schema}' not found in database.\n\n"
            f"Suggestions:\n"
            f"1. Check schema name spelling and casing\n"
            f"2. Set identifier_case if the database folds names differently\n"
            f"3. Check database connection settings"
        )


class TableCollectionError(MetadataError):
    """Introspection failed while building a table."""

    def __init__(self, schema: Optional[str], table: str, cause: BaseException):
        self.schema = schema
        self.table = table
        self.cause = cause
        super().__init__(
            f"Could not collect metadata for table '{qualified_name(schema, table)}': "
            f"{type(cause).__name__}: {cause}\n\n"
            f"Suggestions:\n"
            f"1. Check the table exists and is visible to the connected role\n"
            f"2. Enable quote_identifiers for mixed-case or reserved table names\n"
            f"3. Exclude the table with skip_tables"
        )


class ConnectionUnavailableError(MetadataError):
    """No usable connection: none configured, both configured, or the factory failed."""

    def __init__(self, reason: str, cause: Optional[BaseException] = None):
        self.reason = reason
        self.cause = cause
        detail = f" ({type(cause).__name__}: {cause})" if cause is not None else ""
        super().__init__(
            f"Database connection unavailable: {reason}{detail}\n\n"
            f"Suggestions:\n"
            f"1. Pass exactly one of connection= or connection_factory=\n"
            f"2. Check the database URL and that the server is reachable"
        )


class CollectionError(MetadataError):
    """Unexpected failure while collecting database or schema metadata."""

    def __init__(
        self,
        message: str,
        schema: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.schema = schema
        self.cause = cause
        text = message
        if schema is not None:
            text = f"{message} (schema '{schema}')"
        if cause is not None:
            text = f"{text}: {type(cause).__name__}: {cause}"
        super().__init__(text)


class CollectionCancelledError(MetadataError):
    """Collection was cancelled or ran past its deadline."""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Metadata collection {reason}")
