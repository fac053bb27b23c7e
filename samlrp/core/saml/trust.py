"""Issuer and signature trust decisions.

The consumer never verifies signatures itself. It asks an injected
IssuerTrustEngine whether a message or assertion from a given issuer can be
trusted.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from samlrp.core.saml.model import Assertion, InboundMessage


@runtime_checkable
class IssuerTrustEngine(Protocol):
    """Decides whether a signed object from ``issuer`` is trusted."""

    def is_trusted(self, obj: InboundMessage | Assertion, issuer: str) -> bool:
        ...


class TrustedIssuerEngine:
    """Trusts configured issuers whose signatures were verified by the parser.

    SAML permits an unsigned Response carrying signed Assertions, so by
    default only assertion signatures are required.
    """

    def __init__(
        self,
        trusted_issuers: Iterable[str],
        require_signed_response: bool = False,
        require_signed_assertions: bool = True,
    ) -> None:
        """Initialize the trust engine.

        Args:
            trusted_issuers: Entity IDs of trusted identity providers.
            require_signed_response: Require a verified Response signature.
            require_signed_assertions: Require a verified signature covering
                each Assertion (its own, or the enclosing Response's).
        """
        self.trusted_issuers = frozenset(trusted_issuers)
        self.require_signed_response = require_signed_response
        self.require_signed_assertions = require_signed_assertions

    def is_trusted(self, obj: InboundMessage | Assertion, issuer: str) -> bool:
        if issuer not in self.trusted_issuers:
            return False
        if obj.signature_verified is False:
            return False
        if isinstance(obj, Assertion):
            return not self.require_signed_assertions or obj.signature_verified is True
        return not self.require_signed_response or obj.signature_verified is True
