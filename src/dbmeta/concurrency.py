"""Worker pool and cancellation for parallel collection."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Executor, Future, ThreadPoolExecutor, wait
from typing import Optional, TypeVar

from dbmeta.exceptions import CollectionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often a waiting batch re-checks its cancellation token (seconds)
POLL_INTERVAL = 0.05

_current = threading.local()


class CancellationToken:
    """
    Cooperative cancellation flag with an optional deadline.

    Collection code checks the token before every task and every introspection
    round-trip; work already in flight runs to completion.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize token.

        Args:
            timeout: Seconds from now after which the token counts as cancelled
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            CollectionCancelledError: If cancelled or past the deadline
        """
        if self._event.is_set():
            raise CollectionCancelledError("cancelled")
        if self.expired:
            raise CollectionCancelledError("deadline exceeded")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


class WorkerPool:
    """
    Bounded pool running batches of collection tasks (fan-out/fan-in).

    A batch submitted from one of this pool's own tasks runs inline on the
    calling worker, so nested batches (tables inside a schema task) never wait
    on workers that are all busy waiting themselves.
    """

    def __init__(self, size: int = 1, executor: Optional[Executor] = None):
        """
        Initialize pool.

        Args:
            size: Maximum number of worker threads
            executor: Caller-owned executor to use instead of an internal one;
                it is not shut down by close()
        """
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        self.size = size
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._closed = False

    def _get_executor(self) -> Executor:
        with self._lock:
            if self._closed:
                raise RuntimeError("Worker pool is closed")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.size, thread_name_prefix="dbmeta"
                )
            return self._executor

    def _in_worker(self) -> bool:
        return getattr(_current, "pool", None) is self

    def _run_task(self, task: Callable[[], T], token: Optional[CancellationToken]) -> T:
        check_cancelled(token)
        previous = getattr(_current, "pool", None)
        _current.pool = self
        try:
            return task()
        finally:
            _current.pool = previous

    def run_all(
        self,
        tasks: Sequence[Callable[[], T]],
        token: Optional[CancellationToken] = None,
    ) -> list[T]:
        """
        Run tasks in parallel and wait for all of them.

        Args:
            tasks: Zero-argument callables
            token: Optional cancellation token checked before each task

        Returns:
            Task results, in task order

        Raises:
            The first task error (remaining queued tasks are cancelled), or
            CollectionCancelledError when the token fires while waiting
        """
        check_cancelled(token)
        if not tasks:
            return []

        if self.size == 1 or self._in_worker():
            return [self._run_task(task, token) for task in tasks]

        executor = self._get_executor()
        futures: list[Future] = [
            executor.submit(self._run_task, task, token) for task in tasks
        ]
        pending = set(futures)
        try:
            while pending:
                done, pending = wait(
                    pending, timeout=POLL_INTERVAL, return_when=FIRST_EXCEPTION
                )
                for future in done:
                    if future.exception() is not None:
                        future.result()
                check_cancelled(token)
        except BaseException:
            cancelled = sum(1 for f in pending if f.cancel())
            if cancelled:
                logger.debug(f"Cancelled {cancelled} queued collection task(s)")
            raise
        return [f.result() for f in futures]

    def close(self) -> None:
        """Shut down the internal executor; queued tasks are dropped."""
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None and self._owns_executor:
            executor.shutdown(wait=True, cancel_futures=True)
