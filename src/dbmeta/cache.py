"""Single-flight memoizing cache shared by collection tasks."""

import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future, wait
from typing import Generic, Optional, TypeVar

from dbmeta.concurrency import POLL_INTERVAL, CancellationToken, check_cancelled
from dbmeta.exceptions import CollectionCancelledError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def _wait(future: Future, token: Optional[CancellationToken]) -> None:
    """Block until the future is done, honouring the waiter's own token."""
    if token is None:
        wait([future])
        return
    while not future.done():
        check_cancelled(token)
        remaining = token.remaining()
        timeout = POLL_INTERVAL if remaining is None else min(POLL_INTERVAL, remaining)
        wait([future], timeout=timeout)


class SingleFlightCache(Generic[K, V]):
    """
    Cache where each key is computed at most once.

    The first caller for a key claims it and runs the computation; concurrent
    callers for the same key wait on the claimant's future and receive the same
    value. Failed computations are not cached: waiters see the error, later
    callers compute again.
    """

    def __init__(self) -> None:
        """Initialize cache."""
        self._lock = threading.Lock()
        self._futures: dict[K, Future] = {}

    def get_or_compute(
        self,
        key: K,
        compute: Callable[[], V],
        token: Optional[CancellationToken] = None,
    ) -> V:
        """Get cached value, computing it if no caller has claimed the key.

        Cancellation belongs to the caller, not to the shared work: a waiter
        checks its own token while it waits, and when the claimant is
        cancelled the waiters claim the key again and compute it themselves.

        Args:
            key: Cache key
            compute: Zero-argument callable producing the value, run only
                when this caller claims the key
            token: This caller's cancellation token

        Returns:
            The value computed by the single successful claimant for this key

        Raises:
            CollectionCancelledError: If this caller's token fires
            Whatever `compute` raised, for the claimant and every waiter
                (except a claimant's cancellation)
        """
        while True:
            check_cancelled(token)
            with self._lock:
                future = self._futures.get(key)
                claimed = future is None
                if claimed:
                    future = Future()
                    self._futures[key] = future

            if claimed:
                return self._compute(key, future, compute)

            _wait(future, token)
            if isinstance(future.exception(), CollectionCancelledError):
                continue
            return future.result()

    def _compute(self, key: K, future: Future, compute: Callable[[], V]) -> V:
        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                if self._futures.get(key) is future:
                    del self._futures[key]
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value

    def get(self, key: K) -> Optional[V]:
        """Get a completed value.

        Args:
            key: Cache key

        Returns:
            Cached value, or None if absent, in flight or failed
        """
        with self._lock:
            future = self._futures.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def set(self, key: K, value: V) -> None:
        """Store a value unless the key is already claimed."""
        with self._lock:
            if key in self._futures:
                return
            future: Future = Future()
            future.set_result(value)
            self._futures[key] = future

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None

    def values(self) -> list[V]:
        """Completed values in insertion order."""
        with self._lock:
            futures = list(self._futures.values())
        return [
            f.result() for f in futures if f.done() and f.exception() is None
        ]

    def __len__(self) -> int:
        return len(self.values())

    def clear(self) -> None:
        """Clear cache."""
        with self._lock:
            self._futures.clear()
