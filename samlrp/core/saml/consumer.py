"""Web SSO profile consumer.

Validates an inbound SAML Response and turns the first trustworthy
assertion into an AuthenticatedPrincipal. Checks run in a fixed order and
the first failure of a given assertion ends its evaluation:

1. message shape
2. issuer trust (delegated to an IssuerTrustEngine)
3. status, destination and InResponseTo correlation
4. per assertion: issuer, issue instant, Conditions, subject confirmation,
   authentication statements
5. replay consumption of the chosen identifiers

Nothing is retried. Exceptions raised by the trust engine or replay cache,
other than a replay conflict, propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from samlrp.core.config import ReplayGranularity, ValidationSettings
from samlrp.core.logging import (
    CheckOutcome,
    ValidationLog,
    ValidationLogger,
    get_validation_logger,
)
from samlrp.core.saml.clock import format_instant, utcnow, within_window
from samlrp.core.saml.conditions import ConditionsValidator
from samlrp.core.saml.confirmation import SubjectConfirmationValidator
from samlrp.core.saml.context import MessageContext
from samlrp.core.saml.errors import (
    AssertionTooOldError,
    DestinationMismatchError,
    InResponseToMismatchError,
    InvalidMessageShapeError,
    ReplayDetectedError,
    ResponseStatusError,
    SAMLValidationError,
    UntrustedIssuerError,
)
from samlrp.core.saml.model import Assertion, AuthnStatement, InboundMessage
from samlrp.core.saml.replay import AlreadyUsedError, ReplayCache, create_replay_cache
from samlrp.core.saml.statements import AuthnStatementValidator
from samlrp.core.saml.trust import IssuerTrustEngine

if TYPE_CHECKING:
    from samlrp.core.config import AppConfig
    from samlrp.storage.database import Database


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """The outcome of a successfully validated response."""

    name_id: str
    issuer: str
    assertion_id: str
    authn_instant: datetime
    name_id_format: str | None = None
    session_not_on_or_after: datetime | None = None
    session_index: str | None = None
    authn_context_class_ref: str | None = None
    attributes: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    relay_state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name_id": self.name_id,
            "name_id_format": self.name_id_format,
            "issuer": self.issuer,
            "assertion_id": self.assertion_id,
            "authn_instant": self.authn_instant.isoformat(),
            "session_not_on_or_after": (
                self.session_not_on_or_after.isoformat() if self.session_not_on_or_after else None
            ),
            "session_index": self.session_index,
            "authn_context_class_ref": self.authn_context_class_ref,
            "attributes": {name: list(values) for name, values in self.attributes.items()},
            "relay_state": self.relay_state,
        }


class WebSSOConsumer:
    """Validates Web SSO Responses for one service provider."""

    def __init__(
        self,
        trust_engine: IssuerTrustEngine,
        replay_cache: ReplayCache,
        settings: ValidationSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
        validation_logger: ValidationLogger | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            trust_engine: Decides whether the issuer and signatures are trusted.
            replay_cache: Records consumed identifiers. Required; use
                InsecureNoReplayCache explicitly to disable replay protection.
            settings: Tolerances and policies. Defaults to ValidationSettings().
            clock: Source of the current time.
            validation_logger: Logger to record checks with. Defaults to
                the global validation logger.

        Raises:
            ConfigError: If the settings are inconsistent, e.g. replay entries
                would expire while their assertion is still accepted.
        """
        self.settings = settings or ValidationSettings()
        self.settings.validate()
        self.trust_engine = trust_engine
        self.replay_cache = replay_cache
        self._clock = clock
        self._validation_logger = validation_logger

        self.conditions_validator = ConditionsValidator(
            clock_skew=self.settings.clock_skew,
            require_conditions=self.settings.require_conditions,
            validation_logger=validation_logger,
        )
        self.confirmation_validator = SubjectConfirmationValidator(
            clock_skew=self.settings.clock_skew,
            validation_logger=validation_logger,
        )
        self.statement_validator = AuthnStatementValidator(
            clock_skew=self.settings.clock_skew,
            max_authentication_age=self.settings.max_authentication_age,
            validation_logger=validation_logger,
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        trust_engine: IssuerTrustEngine,
        clock: Callable[[], datetime] = utcnow,
        database: Database | None = None,
    ) -> WebSSOConsumer:
        """Build a consumer, including its replay cache, from configuration.

        Raises:
            ConfigError: If the configuration is invalid or unsafe.
        """
        config.validate()
        replay_cache = create_replay_cache(config.replay, clock=clock, database=database)
        return cls(
            trust_engine=trust_engine,
            replay_cache=replay_cache,
            settings=config.validation,
            clock=clock,
        )

    @property
    def validation_logger(self) -> ValidationLogger:
        return self._validation_logger or get_validation_logger()

    def process_response(self, context: MessageContext) -> AuthenticatedPrincipal:
        """Validate the context's inbound Response.

        Args:
            context: Inbound message and the values expected for this call.

        Returns:
            The authenticated principal from the first trustworthy assertion.

        Raises:
            SAMLValidationError: A subclass naming the specific failure.
        """
        message = context.inbound_message
        vlog = self.validation_logger
        log = vlog.start_validation(message.message_id if message is not None else None)
        try:
            principal = self._process(context, self._clock(), log)
        except SAMLValidationError as e:
            vlog.end_validation(log, e)
            raise
        vlog.end_validation(log)
        return principal

    def verify_authentication_statement(
        self,
        statement: AuthnStatement,
        context: MessageContext,
        log: ValidationLog | None = None,
        target: str | None = None,
    ) -> None:
        """Validate one AuthnStatement on its own.

        This is the same check process_response applies to every statement
        of a candidate assertion.

        Raises:
            AuthenticationInstantInvalidError: AuthnInstant is in the future.
            AuthenticationTooOldError: AuthnInstant is older than allowed.
            SessionExpiredError: SessionNotOnOrAfter has passed.
        """
        self.statement_validator.validate(statement, self._clock(), log, target)

    def _process(
        self, context: MessageContext, now: datetime, log: ValidationLog
    ) -> AuthenticatedPrincipal:
        message = self._check_shape(context, log)
        self._check_issuer(message, context, log)
        self._check_status(message, log)
        self._check_destination(message, context, log)
        self._check_correlation(message, context, log)
        assertion = self._select_assertion(message, context, now, log)
        self._consume(message, assertion, now, log)
        return self._build_principal(assertion, context)

    def _check_shape(self, context: MessageContext, log: ValidationLog) -> InboundMessage:
        vlog = self.validation_logger
        message = context.inbound_message
        if message is None:
            vlog.record(log, "Message shape", CheckOutcome.FAILED, "No inbound message")
            raise InvalidMessageShapeError("SAML message is not present in the context")

        if not message.is_response:
            vlog.record(
                log,
                "Message shape",
                CheckOutcome.FAILED,
                f"Expected Response, got {message.message_type}",
                message.message_id,
            )
            raise InvalidMessageShapeError(
                f"Message is not of the expected type Response (got {message.message_type})"
            )

        if not message.message_id:
            vlog.record(log, "Message shape", CheckOutcome.FAILED, "Response has no ID")
            raise InvalidMessageShapeError("Response does not carry an ID")

        vlog.record(log, "Message shape", CheckOutcome.PASSED, target=message.message_id)
        return message

    def _check_issuer(
        self, message: InboundMessage, context: MessageContext, log: ValidationLog
    ) -> None:
        vlog = self.validation_logger
        issuer = message.issuer
        if not issuer:
            vlog.record(log, "Issuer", CheckOutcome.FAILED, "Response has no Issuer", message.message_id)
            raise UntrustedIssuerError("Response does not identify its issuer")

        if context.peer_entity_id is not None and issuer != context.peer_entity_id:
            vlog.record(
                log,
                "Issuer",
                CheckOutcome.FAILED,
                f"Expected {context.peer_entity_id}, got {issuer}",
                message.message_id,
            )
            raise UntrustedIssuerError(
                f"Response issuer ({issuer}) does not match the expected IdP "
                f"({context.peer_entity_id})"
            )

        if not self.trust_engine.is_trusted(message, issuer):
            vlog.record(
                log, "Issuer trust", CheckOutcome.FAILED, f"{issuer} not trusted", message.message_id
            )
            raise UntrustedIssuerError(f"Response from {issuer} is not trusted")

        vlog.record(log, "Issuer trust", CheckOutcome.PASSED, issuer, message.message_id)

    def _check_status(self, message: InboundMessage, log: ValidationLog) -> None:
        if message.is_success:
            self.validation_logger.record(
                log, "Status", CheckOutcome.PASSED, target=message.message_id
            )
            return

        detail = f"Status {message.status_code or '(not present)'}"
        if message.status_message:
            detail += f": {message.status_message}"
        self.validation_logger.record(log, "Status", CheckOutcome.FAILED, detail, message.message_id)
        raise ResponseStatusError(
            f"SAML Response status is not Success: {detail}", message.status_code
        )

    def _check_destination(
        self, message: InboundMessage, context: MessageContext, log: ValidationLog
    ) -> None:
        vlog = self.validation_logger
        if message.destination is None:
            vlog.record(log, "Destination", CheckOutcome.SKIPPED, "No Destination", message.message_id)
            return

        if message.destination != context.local_endpoint:
            vlog.record(
                log,
                "Destination",
                CheckOutcome.FAILED,
                f"Expected {context.local_endpoint!r}, got {message.destination!r}",
                message.message_id,
            )
            raise DestinationMismatchError(
                f"Response Destination ({message.destination}) does not match "
                f"this endpoint ({context.local_endpoint})"
            )

        vlog.record(log, "Destination", CheckOutcome.PASSED, target=message.message_id)

    def _check_correlation(
        self, message: InboundMessage, context: MessageContext, log: ValidationLog
    ) -> None:
        vlog = self.validation_logger
        expected = context.expected_in_response_to

        if expected is None:
            if not self.settings.allow_unsolicited:
                vlog.record(
                    log,
                    "InResponseTo",
                    CheckOutcome.FAILED,
                    "Unsolicited responses are disabled",
                    message.message_id,
                )
                raise InResponseToMismatchError(
                    "Response is not correlated with any request and unsolicited "
                    "responses are not accepted"
                )
            vlog.record(
                log, "InResponseTo", CheckOutcome.SKIPPED, "Unsolicited response", message.message_id
            )
            return

        if message.in_response_to != expected:
            vlog.record(
                log,
                "InResponseTo",
                CheckOutcome.FAILED,
                f"Expected {expected!r}, got {message.in_response_to!r}",
                message.message_id,
            )
            raise InResponseToMismatchError(
                f"Response InResponseTo ({message.in_response_to}) does not match "
                f"the request sent ({expected})"
            )

        vlog.record(log, "InResponseTo", CheckOutcome.PASSED, target=message.message_id)

    def _select_assertion(
        self,
        message: InboundMessage,
        context: MessageContext,
        now: datetime,
        log: ValidationLog,
    ) -> Assertion:
        last_error: SAMLValidationError | None = None
        for assertion in message.assertions:
            try:
                self._verify_assertion(assertion, message, context, now, log)
            except SAMLValidationError as e:
                self.validation_logger.record(
                    log,
                    "Assertion",
                    CheckOutcome.FAILED,
                    f"{e.kind}: {e.message}",
                    assertion.assertion_id,
                )
                last_error = e
                continue
            self.validation_logger.record(
                log, "Assertion", CheckOutcome.PASSED, "Selected", assertion.assertion_id
            )
            return assertion

        if last_error is None:
            self.validation_logger.record(
                log, "Assertions", CheckOutcome.FAILED, "No assertions", message.message_id
            )
            raise InvalidMessageShapeError("Response does not contain any assertion")
        raise last_error

    def _verify_assertion(
        self,
        assertion: Assertion,
        message: InboundMessage,
        context: MessageContext,
        now: datetime,
        log: ValidationLog,
    ) -> None:
        target = assertion.assertion_id

        if assertion.issuer is None or assertion.issuer != message.issuer:
            raise UntrustedIssuerError(
                f"Assertion issuer ({assertion.issuer}) does not match the response "
                f"issuer ({message.issuer})"
            )
        if not self.trust_engine.is_trusted(assertion, assertion.issuer):
            raise UntrustedIssuerError(f"Assertion from {assertion.issuer} is not trusted")

        if not within_window(
            now,
            assertion.issue_instant,
            assertion.issue_instant + self.settings.max_assertion_age,
            self.settings.clock_skew,
        ):
            raise AssertionTooOldError(
                f"Assertion issue time is either too old or in the future "
                f"(IssueInstant: {format_instant(assertion.issue_instant)})"
            )

        self.conditions_validator.validate(assertion.conditions, context, now, log, target)

        subject = assertion.subject
        self.confirmation_validator.validate(
            subject.confirmations if subject is not None else (), context, now, log, target
        )

        if subject is None or not subject.name_id:
            raise InvalidMessageShapeError("Assertion subject does not carry a NameID")

        if not assertion.authn_statements:
            raise InvalidMessageShapeError("Assertion does not contain an AuthnStatement")

        for statement in assertion.authn_statements:
            self.verify_authentication_statement(statement, context, log, target)

    def _consume(
        self,
        message: InboundMessage,
        assertion: Assertion,
        now: datetime,
        log: ValidationLog,
    ) -> None:
        granularity = self.settings.replay_granularity
        if granularity in (ReplayGranularity.MESSAGE, ReplayGranularity.BOTH):
            self._consume_identifier(message.message_id, message.issue_instant or now, now, log)
        if granularity in (ReplayGranularity.ASSERTION, ReplayGranularity.BOTH):
            self._consume_identifier(assertion.assertion_id, assertion.issue_instant, now, log)

    def _consume_identifier(
        self, identifier: str, issued_at: datetime, now: datetime, log: ValidationLog
    ) -> None:
        # Never record an entry that would already be expired on arrival
        expiry = max(issued_at + self.settings.assertion_validity, now) + self.settings.clock_skew
        try:
            self.replay_cache.check_and_consume(identifier, expiry)
        except AlreadyUsedError as e:
            self.validation_logger.record(
                log, "Replay", CheckOutcome.FAILED, "Identifier already consumed", identifier
            )
            raise ReplayDetectedError(
                f"Identifier {identifier} has already been used", identifier
            ) from e
        self.validation_logger.record(
            log, "Replay", CheckOutcome.PASSED, f"Consumed until {format_instant(expiry)}", identifier
        )

    def _build_principal(
        self, assertion: Assertion, context: MessageContext
    ) -> AuthenticatedPrincipal:
        # Both guaranteed by _verify_assertion
        assert assertion.subject is not None and assertion.subject.name_id
        assert assertion.issuer is not None
        statement = assertion.authn_statements[0]
        return AuthenticatedPrincipal(
            name_id=assertion.subject.name_id,
            name_id_format=assertion.subject.name_id_format,
            issuer=assertion.issuer,
            assertion_id=assertion.assertion_id,
            authn_instant=statement.authn_instant,
            session_not_on_or_after=statement.session_not_on_or_after,
            session_index=statement.session_index,
            authn_context_class_ref=statement.authn_context_class_ref,
            attributes=MappingProxyType(dict(assertion.attributes)),
            relay_state=context.relay_state,
        )
