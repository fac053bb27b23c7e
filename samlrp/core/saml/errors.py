"""Validation failure taxonomy.

Every check raises a specific subclass of SAMLValidationError so that
authentication middleware can tell "please sign in again" conditions apart
from failures that must be handled as security incidents.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Programmatically distinguishable validation failure kinds."""

    INVALID_MESSAGE_SHAPE = "InvalidMessageShape"
    UNTRUSTED_ISSUER = "UntrustedIssuer"
    RESPONSE_STATUS_FAILED = "ResponseStatusFailed"
    DESTINATION_MISMATCH = "DestinationMismatch"
    IN_RESPONSE_TO_MISMATCH = "InResponseToMismatch"
    ASSERTION_TOO_OLD = "AssertionTooOld"
    CONDITIONS_NOT_YET_VALID = "ConditionsNotYetValid"
    CONDITIONS_EXPIRED = "ConditionsExpired"
    AUDIENCE_MISMATCH = "AudienceMismatch"
    UNSUPPORTED_CONFIRMATION_METHOD = "UnsupportedConfirmationMethod"
    SUBJECT_CONFIRMATION_FAILED = "SubjectConfirmationFailed"
    AUTHENTICATION_INSTANT_INVALID = "AuthenticationInstantInvalid"
    AUTHENTICATION_TOO_OLD = "AuthenticationTooOld"
    SESSION_EXPIRED = "SessionExpired"
    REPLAY_DETECTED = "ReplayDetected"


SECURITY_INCIDENT_KINDS = frozenset(
    {
        ErrorKind.UNTRUSTED_ISSUER,
        ErrorKind.REPLAY_DETECTED,
        ErrorKind.AUDIENCE_MISMATCH,
        ErrorKind.DESTINATION_MISMATCH,
        ErrorKind.IN_RESPONSE_TO_MISMATCH,
    }
)

REAUTHENTICATION_KINDS = frozenset(
    {
        ErrorKind.SESSION_EXPIRED,
        ErrorKind.AUTHENTICATION_TOO_OLD,
    }
)


class SAMLValidationError(Exception):
    """Base exception for all response validation failures."""

    kind: ErrorKind = ErrorKind.INVALID_MESSAGE_SHAPE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def is_security_incident(self) -> bool:
        """Whether the failure must be alerted on rather than just displayed."""
        return self.kind in SECURITY_INCIDENT_KINDS

    @property
    def requires_reauthentication(self) -> bool:
        """Whether the user should simply be asked to authenticate again."""
        return self.kind in REAUTHENTICATION_KINDS

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind='{self.kind}', message='{self.message}')>"


class InvalidMessageShapeError(SAMLValidationError):
    """Raised when the inbound message is missing or structurally unusable."""

    kind = ErrorKind.INVALID_MESSAGE_SHAPE


class UntrustedIssuerError(SAMLValidationError):
    """Raised when the issuer or its signature is not trusted."""

    kind = ErrorKind.UNTRUSTED_ISSUER


class ResponseStatusError(SAMLValidationError):
    """Raised when the IdP reports a non-success status."""

    kind = ErrorKind.RESPONSE_STATUS_FAILED

    def __init__(self, message: str, status_code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DestinationMismatchError(SAMLValidationError):
    """Raised when the response was addressed to another endpoint."""

    kind = ErrorKind.DESTINATION_MISMATCH


class InResponseToMismatchError(SAMLValidationError):
    """Raised when the response does not correlate with a request we sent."""

    kind = ErrorKind.IN_RESPONSE_TO_MISMATCH


class AssertionTooOldError(SAMLValidationError):
    """Raised when an assertion's issue instant is outside the accepted age."""

    kind = ErrorKind.ASSERTION_TOO_OLD


class ConditionsNotYetValidError(SAMLValidationError):
    """Raised when Conditions NotBefore lies in the future."""

    kind = ErrorKind.CONDITIONS_NOT_YET_VALID


class ConditionsExpiredError(SAMLValidationError):
    """Raised when Conditions NotOnOrAfter has passed."""

    kind = ErrorKind.CONDITIONS_EXPIRED


class AudienceMismatchError(SAMLValidationError):
    """Raised when no audience restriction names this service provider."""

    kind = ErrorKind.AUDIENCE_MISMATCH


class UnsupportedConfirmationMethodError(SAMLValidationError):
    """Raised when the subject carries no bearer confirmation."""

    kind = ErrorKind.UNSUPPORTED_CONFIRMATION_METHOD


class SubjectConfirmationFailedError(SAMLValidationError):
    """Raised when no bearer confirmation satisfies its constraints."""

    kind = ErrorKind.SUBJECT_CONFIRMATION_FAILED


class AuthenticationInstantInvalidError(SAMLValidationError):
    """Raised when AuthnInstant lies in the future."""

    kind = ErrorKind.AUTHENTICATION_INSTANT_INVALID


class AuthenticationTooOldError(SAMLValidationError):
    """Raised when the user authenticated too long ago."""

    kind = ErrorKind.AUTHENTICATION_TOO_OLD


class SessionExpiredError(SAMLValidationError):
    """Raised when SessionNotOnOrAfter has passed."""

    kind = ErrorKind.SESSION_EXPIRED


class ReplayDetectedError(SAMLValidationError):
    """Raised when a message or assertion identifier was already consumed."""

    kind = ErrorKind.REPLAY_DETECTED

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier
