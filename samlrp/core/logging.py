"""Validation logging for SAML response processing.

Records every check run during one validation call and forwards it to the
``samlrp.validation`` logger, with configurable log levels and sensitive
data protection.

Log levels:
- ERROR: Only log failures
- INFO: Log validation outcomes (accepted principal, rejection kind)
- DEBUG: Log every individual check
- TRACE: Log subject identifiers and attribute values unredacted (requires explicit enable)
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from samlrp.core.saml.errors import SAMLValidationError

# Custom log level for TRACE (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Module logger
logger = logging.getLogger("samlrp.validation")


class LogLevel(IntEnum):
    """Validation logging levels."""

    ERROR = logging.ERROR  # 40
    INFO = logging.INFO  # 20
    DEBUG = logging.DEBUG  # 10
    TRACE = TRACE  # 5


# Patterns for sensitive data redaction
SENSITIVE_PATTERNS = [
    # Bindings
    (re.compile(r"(SAMLResponse=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(RelayState=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Raw XML
    (re.compile(r"(<(?:saml2?:)?NameID\b[^>]*>)[^<]+(</)"), r"\1[REDACTED]\2"),
    (re.compile(r"(<(?:saml2?:)?AttributeValue\b[^>]*>)[^<]+(</)"), r"\1[REDACTED]\2"),
    # Check details
    (re.compile(r"(name_id=)[^\s,;]+", re.IGNORECASE), r"\1[REDACTED]"),
    # JSON fields
    (re.compile(r'"(name_id)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r'"(session_index)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
]


def redact_sensitive(text: str) -> str:
    """Redact sensitive information from text.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive data redacted.
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


class CheckOutcome(StrEnum):
    """Outcome of a single validation check."""

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass
class ValidationEvent:
    """A single check performed while validating a response."""

    check: str
    outcome: CheckOutcome
    detail: str = ""
    target: str | None = None  # assertion or message ID the check applied to
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Args:
            include_sensitive: If True, include raw sensitive data.

        Returns:
            Dictionary representation of the event.
        """
        return {
            "check": self.check,
            "outcome": self.outcome.value,
            "detail": self.detail if include_sensitive else redact_sensitive(self.detail),
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
        }

    def format_log(self, include_sensitive: bool = False) -> str:
        """Format the event as a single log line."""
        detail = self.detail if include_sensitive else redact_sensitive(self.detail)
        target = f" [{self.target}]" if self.target else ""
        line = f"{self.check}{target}: {self.outcome.value.upper()}"
        if detail:
            line += f" - {detail}"
        return line


@dataclass
class ValidationLog:
    """Collects the checks run during one validation call."""

    validation_id: str
    message_id: str | None = None
    events: list[ValidationEvent] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error_kind: str | None = None

    def add_event(self, event: ValidationEvent) -> None:
        """Add a check event to the log."""
        self.events.append(event)

    def complete(self, error_kind: str | None = None) -> None:
        """Mark the log as complete."""
        self.completed_at = datetime.now(UTC)
        self.error_kind = error_kind

    @property
    def succeeded(self) -> bool:
        return self.completed_at is not None and self.error_kind is None

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "validation_id": self.validation_id,
            "message_id": self.message_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_kind": self.error_kind,
            "events": [e.to_dict(include_sensitive) for e in self.events],
            "event_count": len(self.events),
        }


class ValidationLogger:
    """Configurable logger for response validation.

    Holds no per-call state, so one instance can serve concurrent
    validations; each call owns its ValidationLog.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
    ) -> None:
        """Initialize the validation logger.

        Args:
            level: Minimum log level.
            trace_enabled: Whether TRACE level is enabled (for sensitive data).
        """
        self._level = level
        self._trace_enabled = trace_enabled

    @property
    def level(self) -> LogLevel:
        """Get current log level."""
        return self._level

    @level.setter
    def level(self, value: LogLevel) -> None:
        """Set log level."""
        self._level = value

    @property
    def trace_enabled(self) -> bool:
        """Whether TRACE level is enabled."""
        return self._trace_enabled

    @trace_enabled.setter
    def trace_enabled(self, value: bool) -> None:
        """Enable or disable TRACE level."""
        self._trace_enabled = value

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self._level == LogLevel.TRACE and not self._trace_enabled:
            return LogLevel.DEBUG
        return self._level

    @property
    def include_sensitive(self) -> bool:
        return self._trace_enabled and self._level <= LogLevel.TRACE

    def start_validation(self, message_id: str | None = None) -> ValidationLog:
        """Start a log for one validation call.

        Args:
            message_id: ID of the inbound message, if known.

        Returns:
            ValidationLog for the call.
        """
        log = ValidationLog(
            validation_id=f"val_{secrets.token_hex(8)}",
            message_id=message_id,
        )
        if self.effective_level <= LogLevel.DEBUG:
            logger.debug(f"Started validation {log.validation_id} for message {message_id}")
        return log

    def record(
        self,
        log: ValidationLog | None,
        check: str,
        outcome: CheckOutcome,
        detail: str = "",
        target: str | None = None,
    ) -> ValidationEvent:
        """Record a check result.

        Args:
            log: Log of the current call, or None for standalone checks.
            check: Name of the check.
            outcome: Result of the check.
            detail: Human-readable explanation.
            target: ID of the message or assertion checked.

        Returns:
            The recorded event.
        """
        event = ValidationEvent(check=check, outcome=outcome, detail=detail, target=target)
        if log is not None:
            log.add_event(event)

        if outcome == CheckOutcome.WARNING:
            logger.warning(event.format_log(self.include_sensitive))
        elif self.effective_level <= LogLevel.DEBUG:
            logger.log(
                TRACE if self.include_sensitive else logging.DEBUG,
                event.format_log(self.include_sensitive),
            )
        return event

    def end_validation(
        self,
        log: ValidationLog,
        error: SAMLValidationError | None = None,
    ) -> ValidationLog:
        """Complete the log and emit the outcome.

        Security incidents are logged at ERROR, other rejections at WARNING.

        Args:
            log: Log of the current call.
            error: The failure that ended validation, if any.

        Returns:
            The completed ValidationLog.
        """
        if error is None:
            log.complete()
            logger.info(
                f"Validation {log.validation_id} accepted message {log.message_id} "
                f"({len(log.events)} checks)"
            )
            return log

        log.complete(error_kind=str(error.kind))
        message = error.message if self.include_sensitive else redact_sensitive(error.message)
        if error.is_security_incident:
            logger.error(
                f"SECURITY: validation {log.validation_id} rejected message "
                f"{log.message_id}: {error.kind}: {message}"
            )
        else:
            logger.warning(
                f"Validation {log.validation_id} rejected message "
                f"{log.message_id}: {error.kind}: {message}"
            )
        return log


# Global validation logger instance
_global_logger: ValidationLogger | None = None


def get_validation_logger() -> ValidationLogger:
    """Get the global validation logger instance.

    Returns:
        The global ValidationLogger.
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = ValidationLogger()
    return _global_logger


def set_validation_logger(logger_instance: ValidationLogger) -> None:
    """Set the global validation logger instance.

    Args:
        logger_instance: ValidationLogger to use globally.
    """
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ValidationLogger:
    """Configure validation logging.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or string name.
        trace_enabled: Whether to enable TRACE level (includes subject identifiers).
        log_file: Optional file path to write logs to.

    Returns:
        Configured ValidationLogger.
    """
    # Parse level if string
    if isinstance(level, str):
        level_map = {
            "ERROR": LogLevel.ERROR,
            "INFO": LogLevel.INFO,
            "DEBUG": LogLevel.DEBUG,
            "TRACE": LogLevel.TRACE,
        }
        level = level_map.get(level.upper(), LogLevel.INFO)

    # Configure Python logger
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # Add console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Add file handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    validation_logger = ValidationLogger(level=level, trace_enabled=trace_enabled)
    set_validation_logger(validation_logger)

    if trace_enabled:
        logger.warning(
            "TRACE logging enabled - subject identifiers and attribute values will be logged!"
        )

    return validation_logger
