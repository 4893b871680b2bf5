"""Tests for settings, logging, metrics and process bootstrap."""

import json
import logging

import pytest

from bizplan.core import config as config_module
from bizplan.core.config import Settings, settings, validate_settings_for_production
from bizplan.core.logging import JSONFormatter, setup_logging
from bizplan.core.metrics import render_metrics
from bizplan.core.sentry import init_sentry
from bizplan.gateway.scheduler import RequestScheduler
from bizplan.gateway.types import SchedulerConfig
from bizplan.main import bootstrap
from fakes import FakeClock, FakeUpstream, user


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.openrouter_default_model == "qwen/qwen2.5-vl-72b-instruct:free"
        assert s.gateway_rpm == 2
        assert s.gateway_max_retries == 5
        assert s.gateway_base_retry_delay == 10.0
        assert s.gateway_request_timeout == 60.0

    def test_rpm_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, gateway_rpm=0)

    def test_scheduler_config_from_settings(self):
        s = Settings(_env_file=None, gateway_rpm=4, openrouter_default_model="x/y:free")
        cfg = SchedulerConfig.from_settings(s)
        assert cfg.rate_capacity == 4
        assert cfg.default_model == "x/y:free"
        assert cfg.max_retries == 5

    def test_validate_passes_with_api_key(self):
        validate_settings_for_production()

    def test_validate_requires_api_key(self, monkeypatch):
        monkeypatch.setattr(config_module.settings, "openrouter_api_key", "")
        with pytest.raises(SystemExit, match="OPENROUTER_API_KEY"):
            validate_settings_for_production()


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("bizplan.gateway", logging.INFO, __file__, 1, "dispatch %s", ("r1",), None)
        record.request_id = "r1"
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "bizplan.gateway"
        assert data["message"] == "dispatch r1"
        assert data["request_id"] == "r1"

    @pytest.mark.asyncio
    async def test_scheduler_logs_carry_request_id(self, scheduler, caplog):
        caplog.set_level(logging.DEBUG, logger="bizplan.gateway.scheduler")
        future = scheduler.submit(user("logged"))
        await future

        records = [r for r in caplog.records if r.name == "bizplan.gateway.scheduler"]
        assert records
        request_ids = {r.request_id for r in records}
        assert len(request_ids) == 1

        dispatch = next(r for r in records if r.getMessage().startswith("Dispatching"))
        data = json.loads(JSONFormatter().format(dispatch))
        assert data["request_id"] == request_ids.pop()

    def test_setup_logging_installs_single_handler(self, restore_root_logging):
        setup_logging()
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING


class TestBootstrap:
    def test_sentry_disabled_without_dsn(self):
        assert settings.sentry_dsn == ""
        assert init_sentry() is False

    def test_bootstrap_builds_scheduler(self, restore_root_logging):
        upstream = FakeUpstream(FakeClock())
        scheduler = bootstrap(upstream=upstream)
        assert isinstance(scheduler, RequestScheduler)
        assert scheduler.upstream is upstream
        assert scheduler.config.rate_capacity == settings.gateway_rpm
        assert scheduler.config.default_model == settings.openrouter_default_model

    @pytest.mark.asyncio
    async def test_metrics_record_dispatches(self, scheduler):
        await scheduler.request(user("metrics"))
        body = render_metrics().decode()
        assert "gateway_dispatches_total" in body
        assert "gateway_queue_depth" in body
