import os

# Rich sizes CLI tables from the terminal; give CliRunner a wide one so rows are not truncated.
os.environ.setdefault("COLUMNS", "200")

from datetime import datetime, timedelta, timezone

import pytest

from secmon.config import Settings
from secmon.models.activity import ActivityData, ActivityResponse
from secmon.security.monitor import SecurityMonitor


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return Settings(_env_file=None, log_json=False)


@pytest.fixture
def monitor(config, clock):
    security_monitor = SecurityMonitor(config=config, clock=clock)
    yield security_monitor
    security_monitor.shutdown()


@pytest.fixture
def make_activity(clock):
    def factory(ip="10.0.0.1", status=200, url="/", **kwargs):
        kwargs.setdefault("timestamp", clock())
        kwargs.setdefault("user_agent", "Mozilla/5.0")
        return ActivityData(
            ip_address=ip,
            url=url,
            method=kwargs.pop("method", "GET"),
            response=ActivityResponse(status=status) if status is not None else None,
            **kwargs,
        )

    return factory
