from __future__ import annotations

from pathlib import Path

import pytest

from commdash.fixtures import FixtureLoader, install_fixtures
from commdash.storage.engine import StorageEngine
from commdash.transport.mock import MockHTTPClient, MockShellExecutor

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolated_config_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``$XDG_CONFIG_HOME`` at a temp dir so nothing touches ~/.config."""
    home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home


@pytest.fixture
def engine():
    """Initialized in-memory StorageEngine."""
    e = StorageEngine(":memory:")
    e.initialize()
    yield e
    e.close()


@pytest.fixture
def file_engine(tmp_path: Path):
    """Initialized file-backed StorageEngine (WAL mode)."""
    e = StorageEngine(tmp_path / "commdash.db")
    e.initialize()
    yield e
    e.close()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def loader() -> FixtureLoader:
    return FixtureLoader(FIXTURES_DIR)


@pytest.fixture
def http() -> MockHTTPClient:
    return MockHTTPClient()


@pytest.fixture
def shell() -> MockShellExecutor:
    return MockShellExecutor()


@pytest.fixture
def fixture_transports(loader, http, shell):
    """Mock transports serving every standard fixture file."""
    install_fixtures(loader, http, shell)
    return http, shell
