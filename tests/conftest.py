from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = ROOT / "src"
for entry in (ROOT, SRC_ROOT):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

import pytest  # noqa: E402

from tilemosaic.config import ENV_CONFIG_PATH  # noqa: E402
from tilemosaic.pools import WorkerPool  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch) -> None:
    """Prevent a local service config from bleeding into tests."""
    monkeypatch.delenv(ENV_CONFIG_PATH, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """Undo handlers installed by configure_logging during a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def io_pool():
    pool = WorkerPool("test-io", 4)
    yield pool
    pool.shutdown()
