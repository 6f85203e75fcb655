"""Pytest configuration and fixtures."""

import sys
from collections.abc import AsyncGenerator
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pytest_asyncio

from devstream.config import DevStreamConfig, Settings
from devstream.events import EventBroker
from helpers import FakeRunner


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings rooted in a temporary home."""
    return Settings(
        home_dir=tmp_path / "home",
        git_repo_dir=tmp_path,
        debug=True,
        git_poll_interval=0.01,
        desktop_notifications=False,
    )


@pytest.fixture
def config() -> DevStreamConfig:
    """Create default configuration."""
    return DevStreamConfig()


@pytest_asyncio.fixture
async def broker() -> AsyncGenerator[EventBroker, None]:
    """Create an event broker that is closed after the test."""
    event_broker = EventBroker()
    yield event_broker
    await event_broker.close()


@pytest.fixture
def runner() -> FakeRunner:
    """Create a command runner with no canned responses."""
    return FakeRunner()
