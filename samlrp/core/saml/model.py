"""Typed SAML 2.0 protocol structures consumed by the validators.

These are produced by a parser (see ``samlrp.core.saml.parser``) and are
never mutated during validation. Optional elements are ``None`` when absent.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType

# SAML namespaces
SAML_NS = {
    "samlp": "urn:oasis:names:tc:SAML:2.0:protocol",
    "saml": "urn:oasis:names:tc:SAML:2.0:assertion",
    "ds": "http://www.w3.org/2000/09/xmldsig#",
}

STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
BEARER_METHOD = "urn:oasis:names:tc:SAML:2.0:cm:bearer"


class MessageType(StrEnum):
    """Protocol message element names."""

    RESPONSE = "Response"
    AUTHN_REQUEST = "AuthnRequest"
    LOGOUT_REQUEST = "LogoutRequest"
    LOGOUT_RESPONSE = "LogoutResponse"
    ARTIFACT_RESPONSE = "ArtifactResponse"
    ARTIFACT_RESOLVE = "ArtifactResolve"


@dataclass(frozen=True)
class AudienceRestriction:
    """A single AudienceRestriction element."""

    audiences: tuple[str, ...] = ()


@dataclass(frozen=True)
class Conditions:
    """Assertion Conditions: validity window and audience scoping."""

    not_before: datetime | None = None
    not_on_or_after: datetime | None = None
    audience_restrictions: tuple[AudienceRestriction, ...] = ()

    def __post_init__(self) -> None:
        if (
            self.not_before is not None
            and self.not_on_or_after is not None
            and self.not_before > self.not_on_or_after
        ):
            raise ValueError(
                f"Conditions NotBefore ({self.not_before.isoformat()}) is after "
                f"NotOnOrAfter ({self.not_on_or_after.isoformat()})"
            )


@dataclass(frozen=True)
class SubjectConfirmationData:
    """Constraints attached to a subject confirmation."""

    not_before: datetime | None = None
    not_on_or_after: datetime | None = None
    recipient: str | None = None
    in_response_to: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class SubjectConfirmation:
    """A SubjectConfirmation element."""

    method: str
    data: SubjectConfirmationData | None = None

    @property
    def is_bearer(self) -> bool:
        return self.method == BEARER_METHOD


@dataclass(frozen=True)
class Subject:
    """Assertion Subject."""

    name_id: str | None = None
    name_id_format: str | None = None
    confirmations: tuple[SubjectConfirmation, ...] = ()


@dataclass(frozen=True)
class AuthnStatement:
    """An AuthnStatement describing the authentication event."""

    authn_instant: datetime
    session_not_on_or_after: datetime | None = None
    session_index: str | None = None
    authn_context_class_ref: str | None = None


@dataclass(frozen=True)
class Assertion:
    """A SAML Assertion."""

    assertion_id: str
    issue_instant: datetime
    issuer: str | None = None
    subject: Subject | None = None
    conditions: Conditions | None = None
    authn_statements: tuple[AuthnStatement, ...] = ()
    attributes: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    signature_verified: bool | None = None


@dataclass(frozen=True)
class InboundMessage:
    """An already-parsed inbound protocol message.

    ``signature_verified`` is ``None`` when no signature verification was
    attempted, ``False`` when a signature was present and failed.
    """

    message_type: str
    message_id: str
    issue_instant: datetime | None = None
    issuer: str | None = None
    in_response_to: str | None = None
    destination: str | None = None
    status_code: str | None = None
    status_message: str | None = None
    assertions: tuple[Assertion, ...] = ()
    signature_verified: bool | None = None

    @property
    def is_response(self) -> bool:
        return self.message_type == MessageType.RESPONSE

    @property
    def is_success(self) -> bool:
        return self.status_code == STATUS_SUCCESS
