from __future__ import annotations

import os
import threading

import pytest

from tilemosaic.pools import WorkerPool, coerce_workers
from tilemosaic.result import Result


def test_coerce_workers() -> None:
    assert coerce_workers(3) == 3
    assert coerce_workers(0) == max(1, os.cpu_count() or 1)
    with pytest.raises(ValueError, match="workers"):
        coerce_workers(-1)


def test_pool_threads_are_named() -> None:
    with WorkerPool("io", 1) as pool:
        name = pool.submit(lambda: Result.found(threading.current_thread().name)).result()
        raw = pool.submit_raw(lambda: 7).result()
    assert name.value.startswith("tilemosaic-io")
    assert raw == 7
