"""
Tests for structured logging.
"""

import json
import logging

import pytest

from shellsense.utils.logging import (
    DevelopmentFormatter,
    PACKAGE_LOGGER,
    PerformanceLogger,
    StructuredLogFormatter,
    get_pipeline_run_id,
    set_pipeline_run_id,
    set_session_id,
    setup_structured_logging,
)
from shellsense.utils.config import LoggingConfig
from shellsense.utils.errors import ConfigurationError


def _record(message="pipeline.run.completed", level=logging.INFO, **extra):
    record = logging.LogRecord("shellsense.pipeline.orchestrator", level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredLogFormatter:

    def setup_method(self):
        self.formatter = StructuredLogFormatter()

    def teardown_method(self):
        set_session_id(None)
        set_pipeline_run_id(None)

    def test_schema(self):
        data = json.loads(self.formatter.format(_record(count=2)))

        assert data["level"] == "INFO"
        assert data["logger"] == "shellsense.pipeline.orchestrator"
        assert data["message"] == "pipeline.run.completed"
        assert data["timestamp"].endswith("Z")
        assert data["extra"] == {"count": 2}

    def test_context_ids(self):
        set_session_id("tab-1")
        set_pipeline_run_id("run-9")

        data = json.loads(self.formatter.format(_record()))

        assert data["session_id"] == "tab-1"
        assert data["pipeline_run_id"] == "run-9"
        assert get_pipeline_run_id() == "run-9"

    def test_non_serializable_extra(self):
        data = json.loads(self.formatter.format(_record(path=object())))

        assert isinstance(data["extra"]["path"], str)


class TestDevelopmentFormatter:

    def test_plain_line_includes_extra(self):
        line = DevelopmentFormatter(use_colors=False).format(_record(cwd="/p"))

        assert "pipeline.run.completed" in line
        assert "cwd=/p" in line


class TestPerformanceLogger:

    def test_records_duration(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="shellsense.performance.llm.openai.complete"):
            with PerformanceLogger("llm.openai.complete", {"model": "gpt-4o"}) as perf:
                pass

        assert perf.duration_ms >= 0
        assert caplog.records[-1].model == "gpt-4o"
        assert "completed in" in caplog.records[-1].getMessage()

    def test_slow_operation_warns(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="shellsense.performance.slow"):
            with PerformanceLogger("slow", slow_threshold_ms=-1):
                pass

        assert caplog.records[-1].levelno == logging.WARNING

    def test_exception_propagates(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="shellsense.performance.failing"):
            with pytest.raises(ValueError):
                with PerformanceLogger("failing"):
                    raise ValueError("boom")

        assert caplog.records[-1].error == "boom"


@pytest.fixture
def package_logger():
    """The shellsense logger, restored to its original state afterwards."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    saved_level, saved_handlers = logger.level, list(logger.handlers)
    yield logger
    for handler in logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers[:] = saved_handlers
    logger.setLevel(saved_level)


class TestSetupStructuredLogging:

    def test_configures_package_logger_only(self, package_logger):
        root_handlers = list(logging.getLogger().handlers)

        logger = setup_structured_logging("debug", "dev")

        assert logger is package_logger
        assert logger.level == logging.DEBUG
        assert isinstance(logger.handlers[-1].formatter, DevelopmentFormatter)
        assert logging.getLogger().handlers == root_handlers

    def test_reconfiguring_replaces_handlers(self, package_logger):
        before = len(package_logger.handlers)

        setup_structured_logging("INFO", "json")
        setup_structured_logging("WARNING", "json")

        assert len(package_logger.handlers) == before + 1
        assert isinstance(package_logger.handlers[-1].formatter, StructuredLogFormatter)

    def test_log_file_gets_json_lines(self, package_logger, tmp_path):
        log_file = tmp_path / "logs" / "shellsense.jsonl"

        setup_structured_logging("INFO", "dev", log_file=str(log_file))
        logging.getLogger("shellsense.pipeline.orchestrator").info("pipeline.run.started", extra={"cwd": "/p"})
        for handler in package_logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["message"] == "pipeline.run.started"
        assert data["extra"]["cwd"] == "/p"

    def test_unknown_level(self, package_logger):
        with pytest.raises(ConfigurationError):
            setup_structured_logging("LOUD")

    def test_logging_config_apply(self, package_logger):
        logger = LoggingConfig(level="ERROR", format_type="json").apply()

        assert logger.level == logging.ERROR
        assert isinstance(logger.handlers[-1].formatter, StructuredLogFormatter)
