"""Authentication statement validation.

Policy: an AuthnInstant later than now plus skew is always rejected, and a
statement without SessionNotOnOrAfter is treated as a session of unlimited
length.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from samlrp.core.logging import (
    CheckOutcome,
    ValidationLog,
    ValidationLogger,
    get_validation_logger,
)
from samlrp.core.saml.clock import DEFAULT_CLOCK_SKEW, format_instant
from samlrp.core.saml.errors import (
    AuthenticationInstantInvalidError,
    AuthenticationTooOldError,
    SessionExpiredError,
)
from samlrp.core.saml.model import AuthnStatement

DEFAULT_MAX_AUTHENTICATION_AGE = timedelta(hours=2)


class AuthnStatementValidator:
    """Checks the authentication instant and session lifetime of a statement."""

    def __init__(
        self,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
        max_authentication_age: timedelta | None = DEFAULT_MAX_AUTHENTICATION_AGE,
        validation_logger: ValidationLogger | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            clock_skew: Tolerance for all time comparisons.
            max_authentication_age: Longest accepted time since the user
                authenticated at the IdP. None disables the check.
            validation_logger: Logger to record checks with.
        """
        self.clock_skew = clock_skew
        self.max_authentication_age = max_authentication_age
        self._validation_logger = validation_logger

    @property
    def validation_logger(self) -> ValidationLogger:
        return self._validation_logger or get_validation_logger()

    def validate(
        self,
        statement: AuthnStatement,
        now: datetime,
        log: ValidationLog | None = None,
        target: str | None = None,
    ) -> None:
        """Validate a single AuthnStatement.

        Raises:
            AuthenticationInstantInvalidError: AuthnInstant is in the future.
            AuthenticationTooOldError: AuthnInstant is older than allowed.
            SessionExpiredError: SessionNotOnOrAfter has passed.
        """
        vlog = self.validation_logger

        if statement.authn_instant > now + self.clock_skew:
            vlog.record(
                log,
                "AuthnInstant",
                CheckOutcome.FAILED,
                f"AuthnInstant {format_instant(statement.authn_instant)} is in the future",
                target,
            )
            raise AuthenticationInstantInvalidError(
                f"Authentication instant is in the future "
                f"(AuthnInstant: {format_instant(statement.authn_instant)})"
            )

        if (
            self.max_authentication_age is not None
            and now > statement.authn_instant + self.max_authentication_age + self.clock_skew
        ):
            vlog.record(
                log,
                "AuthnInstant",
                CheckOutcome.FAILED,
                f"AuthnInstant {format_instant(statement.authn_instant)} exceeds maximum age",
                target,
            )
            raise AuthenticationTooOldError(
                f"Authentication statement is too old to be used "
                f"(AuthnInstant: {format_instant(statement.authn_instant)})"
            )

        vlog.record(log, "AuthnInstant", CheckOutcome.PASSED, target=target)

        if statement.session_not_on_or_after is None:
            vlog.record(
                log,
                "SessionNotOnOrAfter",
                CheckOutcome.SKIPPED,
                "No session expiry: session valid until the IdP says otherwise",
                target,
            )
            return

        if now >= statement.session_not_on_or_after + self.clock_skew:
            vlog.record(
                log,
                "SessionNotOnOrAfter",
                CheckOutcome.FAILED,
                f"Session expired at {format_instant(statement.session_not_on_or_after)}",
                target,
            )
            raise SessionExpiredError(
                f"Authentication session has expired "
                f"(SessionNotOnOrAfter: {format_instant(statement.session_not_on_or_after)})"
            )

        vlog.record(log, "SessionNotOnOrAfter", CheckOutcome.PASSED, target=target)
