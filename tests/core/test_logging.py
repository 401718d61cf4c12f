"""
Tests for the logging module.

Tests verify:
- Bound context appears on log lines and is removed again
- JSON output uses ECS field names
- DEBUG logs are suppressed at INFO level
"""

import json

import pytest
import structlog

from blockseq.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


class TestContextManagement:
    def test_bind_and_unbind(self):
        bind_context(batch="0-999", worker=1)
        assert structlog.contextvars.get_contextvars() == {"batch": "0-999", "worker": 1}
        unbind_context("worker")
        assert structlog.contextvars.get_contextvars() == {"batch": "0-999"}

    def test_log_context_scoped(self):
        with LogContext(batch="1000-1999"):
            assert structlog.contextvars.get_contextvars()["batch"] == "1000-1999"
        assert "batch" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_log_context_async(self):
        async with LogContext(batch="2000-2499"):
            assert structlog.contextvars.get_contextvars()["batch"] == "2000-2499"
        assert "batch" not in structlog.contextvars.get_contextvars()


class TestConfigureLogging:
    def test_json_output_on_stderr(self, capsys):
        configure_logging(level="INFO", json_format=True, service="blockseq-test")
        logger = get_logger("tests.logging")
        with LogContext(batch="0-999"):
            logger.info("job.done", project_id="42")

        captured = capsys.readouterr()
        assert captured.out == ""
        line = json.loads(captured.err.strip().splitlines()[-1])
        assert line["event"] == "job.done"
        assert line["project_id"] == "42"
        assert line["batch"] == "0-999"
        assert line["log.level"] == "info"
        assert line["log.logger"] == "tests.logging"
        assert line["service.name"] == "blockseq-test"
        assert "@timestamp" in line

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("tests.logging.debug")
        logger.debug("queue.noise")
        logger.warning("job.failed", project_id="1")

        err = capsys.readouterr().err
        assert "queue.noise" not in err
        assert "job.failed" in err


class TestModuleLoggers:
    def test_cli_imports_and_module_logger_logs(self, capsys):
        import blockseq.cli.app  # noqa: F401
        from blockseq.execution import queue

        configure_logging(level="INFO", json_format=True)
        structlog.configure(cache_logger_on_first_use=False)
        queue.logger.info("queue.start", total=0)

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["event"] == "queue.start"
        assert line["log.logger"] == "blockseq.execution.queue"
