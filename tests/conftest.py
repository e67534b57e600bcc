"""pytest configuration for ctrldeck tests."""

from __future__ import annotations

import pytest

from ctrldeck.controllers import Controllers
from fakes import FakeBrightness, FakeMedia, FakeMic, FakeVolume


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def controllers() -> Controllers:
    return Controllers(
        volume=FakeVolume(),
        mic=FakeMic(),
        brightness=FakeBrightness(),
        media=FakeMedia(),
    )
