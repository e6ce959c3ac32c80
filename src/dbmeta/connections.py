"""Connection acquisition for introspection and sequence strategies."""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional

from dbmeta.exceptions import ConnectionUnavailableError

logger = logging.getLogger(__name__)


class ConnectionProvider:
    """
    Hands out database connections in exactly one acquisition mode.

    Shared mode wraps a single connection; tasks take turns on it, so
    parallel collection is bounded by that one connection. Factory mode opens
    a connection per use and releases it afterwards, letting tasks run truly
    in parallel.
    """

    def __init__(
        self,
        connection: Optional[Any] = None,
        connection_factory: Optional[Callable[[], Any]] = None,
        release: Optional[Callable[[Any], None]] = None,
    ):
        """
        Initialize provider.

        Args:
            connection: Shared DB-API connection
            connection_factory: Callable returning a new connection
            release: Called with each factory connection after use
                (defaults to closing it; pass e.g. `pool.putconn` for a pool)

        Raises:
            ConnectionUnavailableError: Unless exactly one of connection and
                connection_factory is given
        """
        if connection is None and connection_factory is None:
            raise ConnectionUnavailableError("neither connection nor connection_factory configured")
        if connection is not None and connection_factory is not None:
            raise ConnectionUnavailableError("both connection and connection_factory configured")
        self._connection = connection
        self._factory = connection_factory
        self._release = release
        self._lock = threading.RLock()

    @property
    def is_shared(self) -> bool:
        return self._connection is not None

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Acquire a connection for the duration of the block.

        Raises:
            ConnectionUnavailableError: If the factory fails to produce one
        """
        if self._connection is not None:
            with self._lock:
                yield self._connection
            return

        try:
            conn = self._factory()
        except Exception as exc:
            raise ConnectionUnavailableError("connection factory failed", exc) from exc
        if conn is None:
            raise ConnectionUnavailableError("connection factory returned None")

        try:
            yield conn
        finally:
            self._release_connection(conn)

    def _release_connection(self, conn: Any) -> None:
        if self._release is not None:
            self._release(conn)
        else:
            conn.close()
