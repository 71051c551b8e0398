"""
Tests for ferry.core.logging.

Tests verify:
- JSON output carries ECS field names and service metadata
- LogContext binds and unbinds run-scoped fields
- DEBUG logs are suppressed at INFO level
"""

import json

import pytest
import structlog

from ferry.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def _lines(capsys) -> list[dict]:
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("ferry.test").info("executor.start", stores=["src", "dst"])

        (line,) = _lines(capsys)
        assert line["event"] == "executor.start"
        assert line["stores"] == ["src", "dst"]
        assert line["log.level"] == "info"
        assert line["service.name"] == "ferry"
        assert line["logger"] == "ferry.test"
        assert "@timestamp" in line

    def test_custom_service_name(self, capsys):
        configure_logging(json_format=True, service="ferry-worker")
        get_logger().info("hello")
        assert _lines(capsys)[0]["service.name"] == "ferry-worker"

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", json_format=True)
        log = get_logger("ferry.test")
        log.debug("hidden")
        log.info("shown")

        events = [line["event"] for line in _lines(capsys)]
        assert events == ["shown"]

    def test_named_logger_without_configuration(self, capsys):
        structlog.reset_defaults()
        get_logger("ferry.test").info("unconfigured", alias="src")
        out = capsys.readouterr().out
        assert "unconfigured" in out
        assert "src" in out

    def test_console_format(self, capsys):
        configure_logging(level="DEBUG", json_format=False)
        get_logger("ferry.test").debug("extract.start", source="src[0]")
        out = capsys.readouterr().out
        assert "extract.start" in out
        assert "src[0]" in out


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_context_fields_are_bound(self, capsys):
        configure_logging(json_format=True)
        log = get_logger("ferry.test")
        with LogContext(operation="users", run_id="abc123"):
            log.info("inside")
        log.info("outside")

        inside, outside = _lines(capsys)
        assert inside["operation"] == "users"
        assert inside["run_id"] == "abc123"
        assert "operation" not in outside

    def test_none_values_are_dropped(self, capsys):
        configure_logging(json_format=True)
        with LogContext(operation="users", run_id=None):
            get_logger().info("inside")
        assert "run_id" not in _lines(capsys)[0]

    @pytest.mark.asyncio
    async def test_async_context_manager(self, capsys):
        configure_logging(json_format=True)
        async with LogContext(operation="orders"):
            get_logger().info("inside")
        assert _lines(capsys)[0]["operation"] == "orders"

    def test_bind_and_unbind(self, capsys):
        configure_logging(json_format=True)
        bind_context(pass_number=3)
        get_logger().info("one")
        unbind_context("pass_number")
        get_logger().info("two")

        one, two = _lines(capsys)
        assert one["pass_number"] == 3
        assert "pass_number" not in two
