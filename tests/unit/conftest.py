"""Shared fixtures for unit tests."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from aioresponses import aioresponses

from playmaster.hooks.base import HookContext
from playmaster.models.config import Config
from playmaster.models.options import RunOptions
from playmaster.processes import ProcessRegistry
from playmaster.testing.factories import ConfigFactory


@pytest.fixture(autouse=True)
def playmaster_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep command logs inside the test's temporary directory."""
    home = tmp_path / "playmaster-home"
    monkeypatch.setenv("PLAYMASTER_HOME", str(home))
    return home


@pytest.fixture
def registry() -> Iterator[ProcessRegistry]:
    """Process registry that kills leftovers after the test."""
    registry = ProcessRegistry()
    yield registry
    registry.terminate_all()


@pytest.fixture
def config() -> Config:
    """Configuration without hooks, dependencies or integrations."""
    return ConfigFactory.build()


@pytest.fixture
def ctx(config: Config, registry: ProcessRegistry) -> HookContext:
    """Context of a non-interactive local run."""
    return HookContext(
        options=RunOptions(mode="local", yes=True),
        config=config,
        registry=registry,
    )


@pytest.fixture
def mock_aioresponses() -> Iterator[aioresponses]:
    """Intercept aiohttp requests."""
    with aioresponses() as mocked:
        yield mocked
