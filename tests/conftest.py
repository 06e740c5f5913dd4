"""
Pytest configuration and shared fixtures.
"""
import pytest

from browser_frames.cdp.events import FrameAttached, FrameNavigated
from browser_frames.core.config import FrameTrackerConfig
from browser_frames.frames.manager import FrameManager

from tests.helpers import EMPTY_PAGE, FakeSession, FakeTransport


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires Chrome)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


@pytest.fixture
def config():
    """Short timeouts so a broken wait fails fast."""
    return FrameTrackerConfig(default_timeout=1.0, attach_timeout=1.0)


@pytest.fixture
def primary_session():
    return FakeSession("page-session", "page-target")


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
async def manager(transport, primary_session, config):
    """A started frame manager with no frames yet."""
    m = FrameManager(transport, primary_session, config=config)
    await m.start()
    yield m
    await m.close()


@pytest.fixture
async def page(manager, primary_session):
    """A frame manager whose main frame has loaded the empty page."""
    primary_session.emit(FrameAttached(frame_id="main"))
    primary_session.emit(FrameNavigated(frame_id="main", url=EMPTY_PAGE))
    await manager.settle()
    return manager
