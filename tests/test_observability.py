"""Tests for observability utilities and zero PII in pipeline logs."""

import json
import logging
import re

import pytest

from helpers import make_event, make_image_event, make_outbound_event
from wacrm.observability.correlation import (
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    resolve_correlation_id,
    set_correlation_id,
)
from wacrm.observability.logging import JsonFormatter, get_logger, set_log_level
from wacrm.observability.redaction import (
    id_prefix,
    phone_tail,
    redact_string,
    redact_value,
    safe_log_context,
)

PIPELINE_LOGGERS = (
    "wacrm.domain.ingestion",
    "wacrm.domain.identity",
    "wacrm.domain.idempotency",
)


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.lines: list[str] = []
        self.setFormatter(JsonFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(self.format(record))


@pytest.fixture
def pipeline_logs():
    """Collect formatted JSON lines from the pipeline loggers."""
    handler = _ListHandler()
    loggers = [get_logger(name) for name in PIPELINE_LOGGERS]
    for logger in loggers:
        logger.addHandler(handler)
    yield handler.lines
    for logger in loggers:
        logger.removeHandler(handler)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 11 99999-8888")
        assert "99999" not in result
        assert "[REDACTED]" in result

    def test_redact_jid(self):
        result = redact_string("from 5511988887777@s.whatsapp.net")
        assert "whatsapp.net" not in result
        assert "5511988887777" not in result

    def test_redact_lid(self):
        assert "123456789012345" not in redact_string("123456789012345@lid")

    def test_redact_url(self):
        result = redact_string("media at https://mmg.whatsapp.net/d/f/abc.enc?oh=1")
        assert "mmg.whatsapp.net" not in result

    def test_redact_email(self):
        result = redact_string("Email: user@example.com")
        assert "user@example.com" not in result
        assert "[REDACTED]" in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"sender": "5511988887777", "text": "Olá"})
        assert "5511988887777" not in result
        assert "Olá" not in result
        assert "sender" in result

    def test_redact_value_list_only_len(self):
        result = redact_value(["a", "b", "c"])
        assert "len=3" in result

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5511999998888", count=42, ok=True, missing=None)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"
        assert ctx["ok"] == "true"
        assert ctx["missing"] == "null"

    def test_phone_tail(self):
        assert phone_tail("5511988887777") == "*********7777"
        assert phone_tail("") == "null"
        assert phone_tail("123") == "***"

    def test_id_prefix(self):
        assert id_prefix("3EB0C431C26A1D9F8E5A") == "3EB0C431"
        assert id_prefix(None) == "null"


class TestCorrelation:
    def test_set_and_reset(self):
        token = set_correlation_id("cid-1")
        try:
            assert get_correlation_id() == "cid-1"
        finally:
            reset_correlation_id(token)
        assert get_correlation_id() == ""

    def test_generate_is_hex(self):
        assert re.fullmatch(r"[0-9a-f]{32}", generate_correlation_id())

    def test_resolve_reuses_sane_header(self):
        assert resolve_correlation_id(" upstream-1 ") == "upstream-1"

    @pytest.mark.parametrize("value", [None, "", "   ", "x" * 129, "bad\nvalue"])
    def test_resolve_generates_otherwise(self, value):
        assert re.fullmatch(r"[0-9a-f]{32}", resolve_correlation_id(value))


class TestJsonFormatter:
    def test_includes_correlation_and_extra_fields(self):
        record = logging.LogRecord("wacrm.test", logging.INFO, __file__, 1, "hello", None, None)
        record.extra_fields = {"stage": "persisted"}

        token = set_correlation_id("cid-42")
        try:
            line = json.loads(JsonFormatter().format(record))
        finally:
            reset_correlation_id(token)

        assert line["message"] == "hello"
        assert line["level"] == "INFO"
        assert line["service"] == "wacrm"
        assert line["correlationId"] == "cid-42"
        assert line["stage"] == "persisted"


class TestLogLevel:
    def test_level_shared_by_service_loggers(self):
        logger = get_logger("wacrm.domain.ingestion")
        try:
            set_log_level("warning")
            assert logger.getEffectiveLevel() == logging.WARNING
            assert not logger.isEnabledFor(logging.INFO)
        finally:
            set_log_level("INFO")
        assert logger.isEnabledFor(logging.INFO)

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError, match="unknown log level"):
            set_log_level("loud")


class TestPipelineLogsHaveNoPii:
    def _assert_clean(self, lines):
        assert lines, "Expected at least 1 log line"
        all_logs = " ".join(lines)
        assert "5511988887777" not in all_logs
        assert "s.whatsapp.net" not in all_logs
        assert "Olá" not in all_logs
        assert "Atendente" not in all_logs
        assert "mmg.whatsapp.net" not in all_logs
        assert not re.search(r"\d{10,15}", all_logs)

    def test_inbound_text(self, ingestor, pipeline_logs):
        ingestor.ingest(make_event({"senderName": "Maria"}))
        ingestor.ingest(make_event({"senderName": "Maria"}))
        self._assert_clean(pipeline_logs)
        assert "Maria" not in " ".join(pipeline_logs)

    def test_outbound_and_media(self, ingestor, pipeline_logs):
        ingestor.ingest(make_outbound_event())
        ingestor.ingest(make_image_event())
        self._assert_clean(pipeline_logs)

    def test_failures(self, ingestor, pipeline_logs):
        ingestor.ingest(make_event({"sender": "119999999@s.whatsapp.net"}))
        ingestor.ingest(make_event(instanceName="5511988887777"))
        self._assert_clean(pipeline_logs)
