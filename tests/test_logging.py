"""Tests for validation logging module."""

import logging
from collections.abc import Generator

import pytest

import samlrp.core.logging as logging_module
from samlrp.core.logging import (
    CheckOutcome,
    LogLevel,
    ValidationEvent,
    ValidationLog,
    ValidationLogger,
    configure_logging,
    get_validation_logger,
    redact_sensitive,
    set_validation_logger,
)
from samlrp.core.saml.errors import AudienceMismatchError, SessionExpiredError


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Restore the global validation logger and handlers after each test."""
    saved_global = logging_module._global_logger
    module_logger = logging.getLogger("samlrp.validation")
    saved_handlers = list(module_logger.handlers)
    saved_level = module_logger.level
    yield
    logging_module._global_logger = saved_global
    for handler in module_logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    module_logger.handlers[:] = saved_handlers
    module_logger.setLevel(saved_level)


class TestRedactSensitive:
    """Tests for sensitive data redaction."""

    def test_redact_saml_response_parameter(self):
        """Test redacting a posted SAMLResponse."""
        text = "SAMLResponse=PHNhbWxwOlJlc3BvbnNl&RelayState=/home"
        result = redact_sensitive(text)
        assert "PHNhbWxwOlJlc3BvbnNl" not in result
        assert "/home" not in result
        assert "[REDACTED]" in result

    def test_redact_name_id_xml(self):
        """Test redacting NameID element content."""
        text = '<saml:NameID Format="email">alice@example.com</saml:NameID>'
        result = redact_sensitive(text)
        assert "alice@example.com" not in result
        assert 'Format="email"' in result

    def test_redact_attribute_value_xml(self):
        """Test redacting attribute values."""
        result = redact_sensitive("<saml:AttributeValue>secret-group</saml:AttributeValue>")
        assert "secret-group" not in result

    def test_redact_json_fields(self):
        """Test redacting sensitive JSON fields."""
        text = '{"name_id": "alice@example.com", "issuer": "https://idp.example.com"}'
        result = redact_sensitive(text)
        assert "alice@example.com" not in result
        assert "https://idp.example.com" in result

    def test_no_redact_normal_text(self):
        """Test that normal text is not modified."""
        text = "Audience matches https://sp.example.com/saml/metadata"
        assert redact_sensitive(text) == text


class TestValidationEvent:
    """Tests for ValidationEvent dataclass."""

    def test_format_log(self):
        """Test formatting an event as a log line."""
        event = ValidationEvent(
            check="Destination", outcome=CheckOutcome.FAILED, detail="mismatch", target="_r1"
        )
        assert event.format_log() == "Destination [_r1]: FAILED - mismatch"

    def test_to_dict_redacts(self):
        """Test serialization redacts details by default."""
        event = ValidationEvent(
            check="Subject", outcome=CheckOutcome.PASSED, detail="name_id=alice@example.com"
        )
        assert "alice@example.com" not in event.to_dict()["detail"]
        assert "alice@example.com" in event.to_dict(include_sensitive=True)["detail"]


class TestValidationLog:
    """Tests for ValidationLog dataclass."""

    def test_add_event(self):
        """Test adding events to a validation log."""
        log = ValidationLog(validation_id="val_1", message_id="_r1")
        log.add_event(ValidationEvent(check="Status", outcome=CheckOutcome.PASSED))
        log.add_event(ValidationEvent(check="Destination", outcome=CheckOutcome.SKIPPED))
        assert len(log.events) == 2

    def test_complete(self):
        """Test marking a log as complete."""
        log = ValidationLog(validation_id="val_1")
        assert not log.succeeded

        log.complete()
        assert log.completed_at is not None
        assert log.succeeded

    def test_complete_with_error(self):
        log = ValidationLog(validation_id="val_1")
        log.complete(error_kind="ReplayDetected")
        assert not log.succeeded

    def test_to_dict(self):
        """Test serializing a validation log."""
        log = ValidationLog(validation_id="val_1", message_id="_r1")
        log.add_event(ValidationEvent(check="Status", outcome=CheckOutcome.PASSED))
        log.complete()

        result = log.to_dict()
        assert result["validation_id"] == "val_1"
        assert result["message_id"] == "_r1"
        assert result["event_count"] == 1
        assert result["events"][0]["outcome"] == "passed"


class TestValidationLogger:
    """Tests for ValidationLogger class."""

    def test_default_log_level(self):
        """Test default log level is INFO."""
        assert ValidationLogger().level == LogLevel.INFO

    def test_trace_requires_explicit_enable(self):
        """Test that TRACE level requires explicit enable."""
        vlog = ValidationLogger(level=LogLevel.TRACE, trace_enabled=False)
        assert vlog.effective_level == LogLevel.DEBUG
        assert not vlog.include_sensitive

        vlog.trace_enabled = True
        assert vlog.effective_level == LogLevel.TRACE
        assert vlog.include_sensitive

    def test_start_validation(self):
        vlog = ValidationLogger()
        log = vlog.start_validation("_r1")
        assert log.message_id == "_r1"
        assert log.validation_id.startswith("val_")

    def test_record_appends_event(self):
        vlog = ValidationLogger()
        log = vlog.start_validation("_r1")
        event = vlog.record(log, "Status", CheckOutcome.PASSED)
        assert log.events == [event]

    def test_record_without_log(self):
        """Standalone checks may record without a log."""
        event = ValidationLogger().record(None, "Status", CheckOutcome.PASSED)
        assert event.check == "Status"

    def test_warning_always_emitted(self, caplog):
        vlog = ValidationLogger(level=LogLevel.ERROR)
        with caplog.at_level("WARNING", logger="samlrp.validation"):
            vlog.record(None, "Conditions", CheckOutcome.WARNING, "absent")
        assert "Conditions: WARNING - absent" in caplog.text

    def test_end_validation_security_incident(self, caplog):
        vlog = ValidationLogger()
        log = vlog.start_validation("_r1")
        with caplog.at_level("INFO", logger="samlrp.validation"):
            vlog.end_validation(log, AudienceMismatchError("wrong audience"))
        assert log.error_kind == "AudienceMismatch"
        assert caplog.records[-1].levelno == logging.ERROR
        assert "SECURITY:" in caplog.text

    def test_end_validation_rejection(self, caplog):
        vlog = ValidationLogger()
        log = vlog.start_validation("_r1")
        with caplog.at_level("INFO", logger="samlrp.validation"):
            vlog.end_validation(log, SessionExpiredError("session over"))
        assert caplog.records[-1].levelno == logging.WARNING

    def test_end_validation_success(self, caplog):
        vlog = ValidationLogger()
        log = vlog.start_validation("_r1")
        with caplog.at_level("INFO", logger="samlrp.validation"):
            result = vlog.end_validation(log)
        assert result.succeeded
        assert "accepted message _r1" in caplog.text


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_with_defaults(self):
        """Test configuring with default settings."""
        vlog = configure_logging()
        assert vlog.level == LogLevel.INFO
        assert not vlog.trace_enabled

    def test_configure_with_string_level(self):
        """Test configuring with string log level."""
        assert configure_logging(level="DEBUG").level == LogLevel.DEBUG

    def test_configure_installs_global_logger(self):
        vlog = configure_logging(level="ERROR")
        assert get_validation_logger() is vlog

    def test_configure_log_file(self, tmp_path):
        log_file = tmp_path / "validation.log"
        vlog = configure_logging(level="INFO", log_file=str(log_file))
        vlog.end_validation(vlog.start_validation("_r1"))
        for handler in logging.getLogger("samlrp.validation").handlers:
            handler.flush()
        assert "accepted message _r1" in log_file.read_text()


class TestGlobalLogger:
    """Tests for global logger management."""

    def test_get_validation_logger(self):
        """Test getting the global validation logger."""
        assert get_validation_logger() is get_validation_logger()

    def test_set_validation_logger(self):
        """Test setting the global validation logger."""
        custom = ValidationLogger(level=LogLevel.DEBUG)
        set_validation_logger(custom)
        assert get_validation_logger() is custom
