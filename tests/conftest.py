"""
Shared fixtures for the test suite.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from codewhisper.core.config import Config, StorageConfig
from codewhisper.engine import CodeWhisperEngine

ADD_JS = "function add(a,b){return a+b;}"


class FakeClock:
    """Controllable clock for time-dependent behaviour."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> Config:
    """Default configuration with persistence disabled."""
    return Config(storage=StorageConfig(enabled=False))


@pytest.fixture
def engine(config: Config, clock: FakeClock) -> CodeWhisperEngine:
    return CodeWhisperEngine(config, clock=clock)


@pytest.fixture
def persistent_config(tmp_path: Path) -> Config:
    return Config(storage=StorageConfig(path=str(tmp_path / "patterns.json"), enabled=True))
