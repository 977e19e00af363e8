"""Executor factory utilities used by the payload extractor."""

from __future__ import annotations

import os
import threading
from concurrent import futures
from typing import Any, Callable, Optional


def default_workers() -> int:
    """Return the available hardware parallelism (at least one)."""

    return os.cpu_count() or 1


class BoundedExecutor:
    """Thread pool whose ``submit`` blocks once too many jobs are outstanding.

    ``ThreadPoolExecutor`` queues without limit; the semaphore caps buffered
    work at ``workers + queue_depth`` so a fast producer cannot hold an entire
    archive in memory.
    """

    def __init__(self, workers: int, queue_depth: int, *, thread_name_prefix: str = "") -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if queue_depth < 0:
            raise ValueError("queue_depth must be >= 0")
        self.workers = workers
        self.queue_depth = queue_depth
        self._slots = threading.BoundedSemaphore(workers + queue_depth)
        self._pool = futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=thread_name_prefix
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> futures.Future:
        """Schedule ``fn``, waiting for a free slot first."""

        self._slots.acquire()
        try:
            future = self._pool.submit(fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(lambda _f: self._slots.release())
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with ``wait`` block until queued jobs have run."""

        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "BoundedExecutor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)


def create_executor(
    workers: Optional[int] = None, *, queue_depth: Optional[int] = None
) -> BoundedExecutor:
    """
    Return a bounded thread pool for IO-bound write jobs.

    Args:
        workers: Desired concurrency level; defaults to :func:`default_workers`.
        queue_depth: Jobs allowed to wait beyond the running ones; defaults to
            twice the worker count.

    Returns:
        A :class:`BoundedExecutor`. Callers own its shutdown.
    """
    resolved = workers if workers is not None else default_workers()
    depth = queue_depth if queue_depth is not None else 2 * resolved
    return BoundedExecutor(resolved, depth, thread_name_prefix="caxa-extract")
