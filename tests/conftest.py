"""Global test fixtures for missionctl."""

from __future__ import annotations

from pathlib import Path

import pytest

from missionctl.config.schema import MissionCtlConfig
from missionctl.coordinator.execution import ExecutionEngine
from missionctl.store.memory import InMemoryStore
from tests.helpers.fakes import FakeClock, FakeGateway, make_engine


@pytest.fixture
def tmp_workdir(tmp_path: Path) -> Path:
    """Provide a temporary working directory for file operation tests."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> MissionCtlConfig:
    cfg = MissionCtlConfig()
    cfg.proof.enabled = False
    return cfg


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(now=clock.iso)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def engine(
    config: MissionCtlConfig, store: InMemoryStore, gateway: FakeGateway, clock: FakeClock
) -> ExecutionEngine:
    return make_engine(config=config, store=store, gateway=gateway, clock=clock)
