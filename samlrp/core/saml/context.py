"""Per-call message context."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from samlrp.core.saml.errors import InResponseToMismatchError
from samlrp.core.saml.model import InboundMessage
from samlrp.core.saml.requests import RequestStore


@dataclass(frozen=True)
class MessageContext:
    """Expected values for validating one inbound message.

    Built fresh for every validation call and never reused, since the
    expected correlation ID, recipient and audience are call-specific.

    Attributes:
        inbound_message: The parsed message, or None if nothing was received.
        local_entity_id: This service provider's entity ID (expected audience).
        local_endpoint: This service provider's ACS URL (expected recipient).
        expected_in_response_to: ID of the AuthnRequest being answered, or
            None for unsolicited (IdP-initiated) responses.
        peer_entity_id: Entity ID of the IdP the message is expected from.
        relay_state: RelayState received alongside the message.
    """

    inbound_message: InboundMessage | None
    local_entity_id: str
    local_endpoint: str
    expected_in_response_to: str | None = None
    peer_entity_id: str | None = None
    relay_state: str | None = None

    @classmethod
    def for_response(
        cls,
        message: InboundMessage | None,
        local_entity_id: str,
        local_endpoint: str,
        request_store: RequestStore | None = None,
        peer_entity_id: str | None = None,
        relay_state: str | None = None,
        now: datetime | None = None,
    ) -> MessageContext:
        """Build a context, resolving the expected request from a store.

        When the message carries InResponseTo and a request store is given,
        the referenced request is consumed from the store.

        Raises:
            InResponseToMismatchError: If InResponseTo names a request that was
                never sent, was already answered, or has expired.
        """
        expected: str | None = None
        in_response_to = message.in_response_to if message is not None else None
        if request_store is not None and in_response_to is not None:
            if not request_store.pop(in_response_to, now):
                raise InResponseToMismatchError(
                    f"InResponseTo {in_response_to} does not match any outstanding request"
                )
            expected = in_response_to

        return cls(
            inbound_message=message,
            local_entity_id=local_entity_id,
            local_endpoint=local_endpoint,
            expected_in_response_to=expected,
            peer_entity_id=peer_entity_id,
            relay_state=relay_state,
        )
