"""Bearer subject confirmation validation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from samlrp.core.logging import (
    CheckOutcome,
    ValidationLog,
    ValidationLogger,
    get_validation_logger,
)
from samlrp.core.saml.clock import DEFAULT_CLOCK_SKEW, format_instant, within_window
from samlrp.core.saml.context import MessageContext
from samlrp.core.saml.errors import (
    SubjectConfirmationFailedError,
    UnsupportedConfirmationMethodError,
)
from samlrp.core.saml.model import SubjectConfirmation


class SubjectConfirmationValidator:
    """Requires at least one bearer confirmation satisfying all its constraints."""

    def __init__(
        self,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
        validation_logger: ValidationLogger | None = None,
    ) -> None:
        self.clock_skew = clock_skew
        self._validation_logger = validation_logger

    @property
    def validation_logger(self) -> ValidationLogger:
        return self._validation_logger or get_validation_logger()

    def validate(
        self,
        confirmations: Sequence[SubjectConfirmation],
        context: MessageContext,
        now: datetime,
        log: ValidationLog | None = None,
        target: str | None = None,
    ) -> SubjectConfirmation:
        """Select the first satisfied bearer confirmation.

        Returns:
            The confirmation that satisfied all constraints.

        Raises:
            UnsupportedConfirmationMethodError: No bearer confirmation present.
            SubjectConfirmationFailedError: No bearer confirmation satisfied.
        """
        bearers = [c for c in confirmations if c.is_bearer]
        if not bearers:
            methods = sorted({c.method for c in confirmations})
            self.validation_logger.record(
                log,
                "Subject confirmation",
                CheckOutcome.FAILED,
                f"No bearer confirmation (methods: {methods})",
                target,
            )
            raise UnsupportedConfirmationMethodError(
                f"Assertion has no bearer subject confirmation (methods: {methods})"
            )

        reason = ""
        for confirmation in bearers:
            reason = self._check(confirmation, context, now)
            if not reason:
                self.validation_logger.record(
                    log, "Subject confirmation", CheckOutcome.PASSED, "Bearer confirmed", target
                )
                return confirmation
            self.validation_logger.record(
                log, "Subject confirmation candidate", CheckOutcome.FAILED, reason, target
            )

        raise SubjectConfirmationFailedError(
            f"Assertion invalidated by subject confirmation: {reason}"
        )

    def _check(self, confirmation: SubjectConfirmation, context: MessageContext, now: datetime) -> str:
        """Return the reason a confirmation fails, or an empty string."""
        data = confirmation.data
        if data is None:
            return "SubjectConfirmationData is missing"

        if data.not_on_or_after is None:
            return "NotOnOrAfter is missing"
        if not within_window(now, None, data.not_on_or_after, self.clock_skew):
            return f"NotOnOrAfter {format_instant(data.not_on_or_after)} has passed"

        if not within_window(now, data.not_before, None, self.clock_skew):
            return f"NotBefore {format_instant(data.not_before)} is in the future"

        if data.recipient is not None and data.recipient != context.local_endpoint:
            return f"Recipient {data.recipient!r} does not match {context.local_endpoint!r}"

        if (
            data.in_response_to is not None
            and context.expected_in_response_to is not None
            and data.in_response_to != context.expected_in_response_to
        ):
            return (
                f"InResponseTo {data.in_response_to!r} does not match "
                f"{context.expected_in_response_to!r}"
            )

        return ""
