"""
Tests for error handling and structured logging

Tests cover:
- Timeout guarding and error summaries
- JSON formatting with request context
- Request lifecycle records
- Logging setup with JSONL files
"""

import asyncio
import json
import logging

import pytest

from sevak.error_handling import (
    ErrorCategory, GovernmentDataError, InferenceError, RequestValidationError, StageTimeoutError, describe_error,
    request_id_var, with_timeout
)
from sevak.structured_logging import StructuredFormatter, request_log_context, setup_logging


class TestErrorHandling:
    """Test timeouts and the error taxonomy"""

    @pytest.mark.asyncio
    async def test_with_timeout_returns_result(self):
        async def quick():
            return "done"

        assert await with_timeout(quick, 1.0, "quick") == "done"

    @pytest.mark.asyncio
    async def test_with_timeout_raises_stage_timeout(self):
        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(StageTimeoutError) as exc_info:
            await with_timeout(slow, 0.01, "inference")

        assert exc_info.value.operation == "inference"
        assert exc_info.value.category == ErrorCategory.TIMEOUT

    def test_categories_and_retryability(self):
        error = StageTimeoutError("x", 1.0)
        assert error.category == ErrorCategory.TIMEOUT
        assert error.retryable
        assert not RequestValidationError("bad").retryable
        assert not hasattr(error, "user_message")

    def test_government_data_error_is_transient(self):
        assert GovernmentDataError("down").category == ErrorCategory.TRANSIENT

    def test_describe_error(self):
        assert describe_error(InferenceError("503")) == "InferenceError[transient]: 503"
        assert describe_error(ValueError("boom")) == "ValueError: boom"


class TestStructuredFormatter:
    """Test JSON record formatting"""

    def make_record(self, **extra):
        record = logging.LogRecord("sevak.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        data = json.loads(StructuredFormatter().format(self.make_record()))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "sevak.test"
        assert "request_id" not in data

    def test_request_context_and_structured_data(self):
        token = request_id_var.set("req-42")
        try:
            data = json.loads(StructuredFormatter().format(
                self.make_record(structured_data={"event": "stage_complete", "language": "hi"})
            ))
        finally:
            request_id_var.reset(token)

        assert data["request_id"] == "req-42"
        assert data["event"] == "stage_complete"
        assert data["language"] == "hi"


class TestRequestLogContext:
    """Test request lifecycle logging"""

    @pytest.mark.asyncio
    async def test_success_records_summary(self, caplog):
        caplog.set_level(logging.DEBUG, logger="sevak.requests")
        summary = {}

        async with request_log_context("req-1", "user-1", "voice", summary=summary):
            assert request_id_var.get() == "req-1"
            summary["response_mode"] = "online"

        assert request_id_var.get() == ""
        events = [record.structured_data["event"] for record in caplog.records]
        assert events == ["request_start", "request_success"]
        assert caplog.records[-1].structured_data["additional_context"] == {"response_mode": "online"}

    @pytest.mark.asyncio
    async def test_error_is_logged_and_reraised(self, caplog):
        caplog.set_level(logging.DEBUG, logger="sevak.requests")

        with pytest.raises(InferenceError):
            async with request_log_context("req-2", "user-1"):
                raise InferenceError("503")

        error_record = caplog.records[-1].structured_data
        assert error_record["event"] == "request_error"
        assert error_record["error_category"] == "transient"
        assert error_record["error_type"] == "InferenceError"


class TestSetupLogging:
    """Test logging configuration"""

    def setup_method(self):
        root = logging.getLogger()
        self.saved_handlers = root.handlers[:]
        self.saved_level = root.level

    def teardown_method(self):
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self.saved_handlers:
                handler.close()
        root.handlers[:] = self.saved_handlers
        root.setLevel(self.saved_level)

    def test_jsonl_files(self, tmp_path):
        setup_logging("debug", log_dir=str(tmp_path))
        logging.getLogger("sevak.test").info("all records")
        logging.getLogger("sevak.test").error("errors only")
        for handler in logging.getLogger().handlers:
            handler.flush()

        all_lines = (tmp_path / "sevak.jsonl").read_text(encoding="utf-8").splitlines()
        error_lines = (tmp_path / "sevak_errors.jsonl").read_text(encoding="utf-8").splitlines()

        assert [json.loads(line)["message"] for line in all_lines] == ["all records", "errors only"]
        assert [json.loads(line)["message"] for line in error_lines] == ["errors only"]
        assert logging.getLogger().level == logging.DEBUG

    def test_console_only(self):
        setup_logging(logging.WARNING)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
