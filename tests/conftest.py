"""Shared pytest fixtures for Hivemind tests.

Everything runs against MemoryStore; no store container is needed.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from hivemind.config.settings import CoordSettings, LoggingSettings, Settings, StoreSettings
from hivemind.coord.hive import Hive
from hivemind.store.memory import MemoryStore

T0 = 1_700_000_000


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


class RecordingNudger:
    def __init__(self) -> None:
        self.nudged: list[str] = []

    async def nudge(self, terminal: str) -> None:
        self.nudged.append(terminal)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        store=StoreSettings(retry_base_delay_s=0),
        coord=CoordSettings(cache_dir=tmp_path / "cache", wake_script=None),
        logging=LoggingSettings(),
    )


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "My Project"
    (root / ".hivemind").mkdir(parents=True)
    (root / "src").mkdir()
    return root


@pytest.fixture
def scope_dir(project: Path) -> Path:
    return project / ".hivemind"


@pytest.fixture
def nudger() -> RecordingNudger:
    return RecordingNudger()


@pytest.fixture
def hive(
    store: MemoryStore,
    scope_dir: Path,
    settings: Settings,
    clock: FakeClock,
    nudger: RecordingNudger,
) -> Hive:
    return Hive.build(store, scope_dir, settings, nudger=nudger, now_fn=clock)
