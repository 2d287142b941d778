"""Shared test fixtures for hostbridge."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import FakeConnector, FakeSpawner


@pytest.fixture()
def fake_spawner() -> Iterator[FakeSpawner]:
    spawner = FakeSpawner()
    yield spawner
    spawner.close_peers()


@pytest.fixture()
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """Temporary local directory for upload sources."""
    return tmp_path
