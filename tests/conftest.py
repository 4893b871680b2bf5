import pytest

from bizplan.core.config import settings

# Override settings for tests
settings.openrouter_api_key = "test-key"
settings.app_env = "development"
settings.sentry_dsn = ""

from bizplan.gateway.rate_limiter import RateWindowTracker  # noqa: E402
from bizplan.gateway.scheduler import RequestScheduler  # noqa: E402
from bizplan.gateway.types import SchedulerConfig  # noqa: E402
from fakes import FakeClock, FakeUpstream  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream(clock):
    return FakeUpstream(clock)


@pytest.fixture
def config():
    return SchedulerConfig(default_model="test/model")


@pytest.fixture
def scheduler(upstream, config, clock):
    return RequestScheduler(upstream, config, clock=clock, sleep=clock.sleep)


@pytest.fixture
def tracker(clock):
    return RateWindowTracker(capacity=2, window_seconds=60.0, clock=clock)
