"""SAML 2.0 Web SSO response validation."""

from samlrp.core.saml.clock import DEFAULT_CLOCK_SKEW, format_instant, utcnow, within_window
from samlrp.core.saml.conditions import ConditionsValidator
from samlrp.core.saml.confirmation import SubjectConfirmationValidator
from samlrp.core.saml.consumer import AuthenticatedPrincipal, WebSSOConsumer
from samlrp.core.saml.context import MessageContext
from samlrp.core.saml.errors import (
    AssertionTooOldError,
    AudienceMismatchError,
    AuthenticationInstantInvalidError,
    AuthenticationTooOldError,
    ConditionsExpiredError,
    ConditionsNotYetValidError,
    DestinationMismatchError,
    ErrorKind,
    InResponseToMismatchError,
    InvalidMessageShapeError,
    ReplayDetectedError,
    ResponseStatusError,
    SAMLValidationError,
    SessionExpiredError,
    SubjectConfirmationFailedError,
    UnsupportedConfirmationMethodError,
    UntrustedIssuerError,
)
from samlrp.core.saml.model import (
    BEARER_METHOD,
    STATUS_SUCCESS,
    Assertion,
    AudienceRestriction,
    AuthnStatement,
    Conditions,
    InboundMessage,
    MessageType,
    Subject,
    SubjectConfirmation,
    SubjectConfirmationData,
)
from samlrp.core.saml.parser import MessageParseError, parse_response
from samlrp.core.saml.replay import (
    AlreadyUsedError,
    InMemoryReplayCache,
    InsecureNoReplayCache,
    ReplayCache,
    SQLReplayCache,
    create_replay_cache,
)
from samlrp.core.saml.requests import RequestStore
from samlrp.core.saml.statements import AuthnStatementValidator
from samlrp.core.saml.trust import IssuerTrustEngine, TrustedIssuerEngine

__all__ = [
    # Clock
    "DEFAULT_CLOCK_SKEW",
    "format_instant",
    "utcnow",
    "within_window",
    # Model
    "BEARER_METHOD",
    "STATUS_SUCCESS",
    "Assertion",
    "AudienceRestriction",
    "AuthnStatement",
    "Conditions",
    "InboundMessage",
    "MessageType",
    "Subject",
    "SubjectConfirmation",
    "SubjectConfirmationData",
    # Errors
    "AssertionTooOldError",
    "AudienceMismatchError",
    "AuthenticationInstantInvalidError",
    "AuthenticationTooOldError",
    "ConditionsExpiredError",
    "ConditionsNotYetValidError",
    "DestinationMismatchError",
    "ErrorKind",
    "InResponseToMismatchError",
    "InvalidMessageShapeError",
    "ReplayDetectedError",
    "ResponseStatusError",
    "SAMLValidationError",
    "SessionExpiredError",
    "SubjectConfirmationFailedError",
    "UnsupportedConfirmationMethodError",
    "UntrustedIssuerError",
    # Validators
    "AuthnStatementValidator",
    "ConditionsValidator",
    "SubjectConfirmationValidator",
    # Consumer
    "AuthenticatedPrincipal",
    "MessageContext",
    "WebSSOConsumer",
    # Collaborators
    "AlreadyUsedError",
    "InMemoryReplayCache",
    "InsecureNoReplayCache",
    "IssuerTrustEngine",
    "ReplayCache",
    "RequestStore",
    "SQLReplayCache",
    "TrustedIssuerEngine",
    "create_replay_cache",
    # Parsing
    "MessageParseError",
    "parse_response",
]
