"""Explicitly owned worker pools for blocking store reads and request handling."""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from tilemosaic.result import Deferred, Result

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)


def coerce_workers(workers: int) -> int:
    """Normalize a requested worker count; 0 selects the CPU count."""
    jobs = int(workers)
    if jobs < 0:
        raise ValueError("workers must be >= 0")
    if jobs == 0:
        return max(1, os.cpu_count() or 1)
    return jobs


class WorkerPool:
    """Bounded thread pool with named worker threads."""

    def __init__(self, name: str, workers: int) -> None:
        self.name = name
        self.workers = coerce_workers(workers)
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers,
            thread_name_prefix=f"tilemosaic-{name}",
        )
        LOGGER.debug("Started %s pool with %s worker(s)", name, self.workers)

    def submit(self, fn: Callable[..., Result[T]], *args: Any) -> Deferred[T]:
        """Run a result-returning task; raised exceptions become failures."""
        return Deferred.submit(self._executor, fn, *args)

    def submit_raw(self, fn: Callable[..., T], *args: Any) -> "Future[T]":
        """Run a task and return its plain future."""
        return self._executor.submit(fn, *args)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
