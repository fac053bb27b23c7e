"""Assertion Conditions validation: validity window and audience restriction."""

from __future__ import annotations

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
    AudienceMismatchError,
    ConditionsExpiredError,
    ConditionsNotYetValidError,
    InvalidMessageShapeError,
)
from samlrp.core.saml.model import Conditions


class ConditionsValidator:
    """Checks an assertion's Conditions against the current time and audience."""

    def __init__(
        self,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
        require_conditions: bool = False,
        validation_logger: ValidationLogger | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            clock_skew: Tolerance applied to NotBefore and NotOnOrAfter.
            require_conditions: Reject assertions without Conditions instead
                of accepting them with a warning.
            validation_logger: Logger to record checks with. Defaults to
                the global validation logger.
        """
        self.clock_skew = clock_skew
        self.require_conditions = require_conditions
        self._validation_logger = validation_logger

    @property
    def validation_logger(self) -> ValidationLogger:
        return self._validation_logger or get_validation_logger()

    def validate(
        self,
        conditions: Conditions | None,
        context: MessageContext,
        now: datetime,
        log: ValidationLog | None = None,
        target: str | None = None,
    ) -> None:
        """Validate Conditions.

        Raises:
            InvalidMessageShapeError: Conditions are absent and required.
            ConditionsNotYetValidError: NotBefore is in the future.
            ConditionsExpiredError: NotOnOrAfter has passed.
            AudienceMismatchError: No audience restriction names this SP.
        """
        vlog = self.validation_logger

        if conditions is None:
            if self.require_conditions:
                vlog.record(log, "Conditions", CheckOutcome.FAILED, "Conditions absent", target)
                raise InvalidMessageShapeError("Assertion does not contain Conditions")
            # Permitted by the protocol, but the assertion is unscoped
            vlog.record(
                log,
                "Conditions",
                CheckOutcome.WARNING,
                "Assertion has no Conditions: no validity window or audience applies",
                target,
            )
            return

        if not within_window(now, conditions.not_before, None, self.clock_skew):
            vlog.record(
                log,
                "Conditions NotBefore",
                CheckOutcome.FAILED,
                f"NotBefore {format_instant(conditions.not_before)} is in the future",
                target,
            )
            raise ConditionsNotYetValidError(
                f"Assertion is not yet valid (NotBefore: {format_instant(conditions.not_before)}, "
                f"now: {format_instant(now)})"
            )

        if not within_window(now, None, conditions.not_on_or_after, self.clock_skew):
            vlog.record(
                log,
                "Conditions NotOnOrAfter",
                CheckOutcome.FAILED,
                f"NotOnOrAfter {format_instant(conditions.not_on_or_after)} has passed",
                target,
            )
            raise ConditionsExpiredError(
                f"Assertion has expired (NotOnOrAfter: "
                f"{format_instant(conditions.not_on_or_after)}, now: {format_instant(now)})"
            )

        vlog.record(log, "Conditions validity window", CheckOutcome.PASSED, target=target)

        self._validate_audience(conditions, context, log, target)

    def _validate_audience(
        self,
        conditions: Conditions,
        context: MessageContext,
        log: ValidationLog | None,
        target: str | None,
    ) -> None:
        if not conditions.audience_restrictions:
            self.validation_logger.record(
                log, "Audience restriction", CheckOutcome.SKIPPED, "No AudienceRestriction", target
            )
            return

        for restriction in conditions.audience_restrictions:
            if context.local_entity_id in restriction.audiences:
                self.validation_logger.record(
                    log,
                    "Audience restriction",
                    CheckOutcome.PASSED,
                    f"Audience matches {context.local_entity_id}",
                    target,
                )
                return

        audiences = sorted(
            {a for restriction in conditions.audience_restrictions for a in restriction.audiences}
        )
        self.validation_logger.record(
            log,
            "Audience restriction",
            CheckOutcome.FAILED,
            f"Expected {context.local_entity_id}, got {audiences}",
            target,
        )
        raise AudienceMismatchError(
            f"SP entity ID ({context.local_entity_id}) not in audience restrictions ({audiences})"
        )
