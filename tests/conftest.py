"""
Pytest configuration and fixtures for rowqueue tests.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from rowqueue.core.config import load_settings
from rowqueue.drivers.polling import PollingQueueDriver


class FakeClock:
    """Manually advanced UTC clock so visibility windows can elapse instantly."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    """Fake clock shared by a test and its drivers."""
    return FakeClock()


@pytest.fixture
def queue_settings(tmp_path):
    """Factory for polling settings against a throwaway SQLite file."""
    def _make(**overrides):
        values = {
            "DATABASE_URL": str(tmp_path / "queue.db"),
            "DATABASE_BACKEND": "sqlite",
            "QUEUE_NAME": "test_queue",
            "ENVIRONMENT": "testing",
        }
        values.update(overrides)
        return load_settings(**values)
    return _make


@pytest.fixture
def settings(queue_settings):
    """Default polling settings: 10s visibility, 10 receives, batches of 10."""
    return queue_settings()


@pytest_asyncio.fixture
async def make_driver(clock):
    """Factory for polling drivers with their table created; all are closed afterwards."""
    drivers = []

    async def _make(settings, payload_type=str, engine=None):
        driver = PollingQueueDriver(settings, payload_type=payload_type, engine=engine, clock=clock)
        await driver.create_tables()
        drivers.append(driver)
        return driver

    yield _make

    for driver in reversed(drivers):
        await driver.close()


@pytest_asyncio.fixture
async def driver(make_driver, settings):
    """Polling driver for ``str`` payloads on the default settings."""
    return await make_driver(settings)
