"""Pytest configuration for test isolation.

The database client keeps one process-wide engine and refuses to rebind it to
a different URL. Each test bootstraps its own SQLite file, so the shared
engine is disposed after every test. Aggregator credentials and
``DATABASE_URL`` from the developer's shell are cleared so no test can reach
a real database or the real API by accident.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engine  # noqa: E402

_ISOLATED_ENV = (
    "DATABASE_URL",
    "AGGREGATOR_CLIENT_ID",
    "AGGREGATOR_SECRET",
    "AGGREGATOR_ENV",
    "AGGREGATOR_BASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engine()
