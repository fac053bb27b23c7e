"""SAML Response parsing.

Turns Response XML into the typed structures consumed by WebSSOConsumer.
When the issuer's X.509 certificate is supplied, signatures on the Response
and on each Assertion are verified with signxml and the outcome is recorded
in ``signature_verified``; trust decisions are left to the trust engine.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType

from lxml import etree
from signxml import XMLVerifier
from signxml.exceptions import InvalidInput, InvalidSignature

from samlrp.core.saml.model import (
    SAML_NS,
    Assertion,
    AudienceRestriction,
    AuthnStatement,
    Conditions,
    InboundMessage,
    Subject,
    SubjectConfirmation,
    SubjectConfirmationData,
)

logger = logging.getLogger("samlrp.parser")

DSIG_NS = SAML_NS["ds"]
SAMLP_NS = SAML_NS["samlp"]


class MessageParseError(Exception):
    """Raised when a message cannot be decoded or parsed."""


def _secure_parser() -> etree.XMLParser:
    """XML parser that never resolves entities or touches the network."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )


def decode_payload(data: bytes | str) -> bytes:
    """Return raw XML from either XML text or a base64 POST-binding payload.

    Raises:
        MessageParseError: If the payload is neither.
    """
    raw = data.encode("utf-8") if isinstance(data, str) else data
    stripped = raw.strip()
    if stripped.startswith(b"<"):
        return stripped
    try:
        return base64.b64decode(b"".join(stripped.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MessageParseError(f"Failed to decode response: {e}") from e


def _text(elem: etree._Element | None) -> str | None:
    """Full text content of an element.

    Concatenates every text node so that comments inserted into a value
    cannot truncate it.
    """
    if elem is None:
        return None
    return "".join(elem.itertext()).strip()


def _instant(value: str | None, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise MessageParseError(f"Invalid {name} timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _required_instant(value: str | None, name: str) -> datetime:
    parsed = _instant(value, name)
    if parsed is None:
        raise MessageParseError(f"Missing required {name}")
    return parsed


def _verify_signature(element: etree._Element, certificate: str) -> bool:
    """Verify the enveloped signature of ``element`` against ``certificate``.

    The signature must cover the element itself (matching ID), not some
    other part of the document.
    """
    try:
        result = XMLVerifier().verify(etree.tostring(element), x509_cert=certificate)
    except (InvalidSignature, InvalidInput) as e:
        logger.warning(f"Signature verification failed for {element.get('ID')}: {e}")
        return False

    signed = getattr(result, "signed_xml", None)
    if signed is None or signed.get("ID") != element.get("ID"):
        logger.warning(f"Signature does not cover element {element.get('ID')}")
        return False
    return True


def _has_signature(element: etree._Element) -> bool:
    return element.find(f"{{{DSIG_NS}}}Signature") is not None


def _parse_conditions(elem: etree._Element | None) -> Conditions | None:
    if elem is None:
        return None

    restrictions = []
    for restriction_elem in elem.findall("saml:AudienceRestriction", SAML_NS):
        audiences = tuple(
            text
            for text in (_text(a) for a in restriction_elem.findall("saml:Audience", SAML_NS))
            if text
        )
        restrictions.append(AudienceRestriction(audiences=audiences))

    try:
        return Conditions(
            not_before=_instant(elem.get("NotBefore"), "Conditions NotBefore"),
            not_on_or_after=_instant(elem.get("NotOnOrAfter"), "Conditions NotOnOrAfter"),
            audience_restrictions=tuple(restrictions),
        )
    except ValueError as e:
        raise MessageParseError(str(e)) from e


def _parse_subject(elem: etree._Element | None) -> Subject | None:
    if elem is None:
        return None

    name_id_elem = elem.find("saml:NameID", SAML_NS)
    confirmations = []
    for conf_elem in elem.findall("saml:SubjectConfirmation", SAML_NS):
        data_elem = conf_elem.find("saml:SubjectConfirmationData", SAML_NS)
        data = None
        if data_elem is not None:
            data = SubjectConfirmationData(
                not_before=_instant(data_elem.get("NotBefore"), "SubjectConfirmationData NotBefore"),
                not_on_or_after=_instant(
                    data_elem.get("NotOnOrAfter"), "SubjectConfirmationData NotOnOrAfter"
                ),
                recipient=data_elem.get("Recipient"),
                in_response_to=data_elem.get("InResponseTo"),
                address=data_elem.get("Address"),
            )
        confirmations.append(SubjectConfirmation(method=conf_elem.get("Method", ""), data=data))

    return Subject(
        name_id=_text(name_id_elem),
        name_id_format=name_id_elem.get("Format") if name_id_elem is not None else None,
        confirmations=tuple(confirmations),
    )


def _parse_authn_statements(elem: etree._Element) -> tuple[AuthnStatement, ...]:
    statements = []
    for stmt_elem in elem.findall("saml:AuthnStatement", SAML_NS):
        statements.append(
            AuthnStatement(
                authn_instant=_required_instant(stmt_elem.get("AuthnInstant"), "AuthnInstant"),
                session_not_on_or_after=_instant(
                    stmt_elem.get("SessionNotOnOrAfter"), "SessionNotOnOrAfter"
                ),
                session_index=stmt_elem.get("SessionIndex"),
                authn_context_class_ref=_text(
                    stmt_elem.find("saml:AuthnContext/saml:AuthnContextClassRef", SAML_NS)
                ),
            )
        )
    return tuple(statements)


def _parse_attributes(elem: etree._Element) -> Mapping[str, tuple[str, ...]]:
    attributes: dict[str, tuple[str, ...]] = {}
    for attr_elem in elem.findall("saml:AttributeStatement/saml:Attribute", SAML_NS):
        attr_name = attr_elem.get("Name", "")
        if not attr_name:
            continue
        values = tuple(
            _text(value_elem) or ""
            for value_elem in attr_elem.findall("saml:AttributeValue", SAML_NS)
        )
        attributes[attr_name] = attributes.get(attr_name, ()) + values
    return MappingProxyType(attributes)


def _parse_assertion(
    elem: etree._Element,
    certificate: str | None,
    covered_by_response: bool | None,
) -> Assertion:
    assertion_id = elem.get("ID")
    if not assertion_id:
        raise MessageParseError("Assertion has no ID")

    signature_verified: bool | None = None
    if certificate is not None:
        if _has_signature(elem):
            signature_verified = _verify_signature(elem, certificate)
        else:
            signature_verified = bool(covered_by_response)

    return Assertion(
        assertion_id=assertion_id,
        issue_instant=_required_instant(elem.get("IssueInstant"), "Assertion IssueInstant"),
        issuer=_text(elem.find("saml:Issuer", SAML_NS)),
        subject=_parse_subject(elem.find("saml:Subject", SAML_NS)),
        conditions=_parse_conditions(elem.find("saml:Conditions", SAML_NS)),
        authn_statements=_parse_authn_statements(elem),
        attributes=_parse_attributes(elem),
        signature_verified=signature_verified,
    )


def parse_response(
    data: bytes | str,
    idp_certificates: Mapping[str, str] | None = None,
) -> InboundMessage:
    """Parse a SAML protocol message.

    Args:
        data: Message XML, or its base64 encoding as posted to the ACS.
        idp_certificates: PEM signing certificates keyed by IdP entity ID.
            Signatures are only verified for issuers listed here.

    Returns:
        The parsed InboundMessage. Non-Response messages are returned with
        their type tag and no assertions.

    Raises:
        MessageParseError: If the data is not a well-formed SAML message.
    """
    xml_bytes = decode_payload(data)
    try:
        root = etree.fromstring(xml_bytes, parser=_secure_parser())
    except etree.XMLSyntaxError as e:
        raise MessageParseError(f"Failed to parse XML: {e}") from e

    if root.getroottree().docinfo.doctype:
        raise MessageParseError("Document type declarations are not allowed")

    qname = etree.QName(root)
    if qname.namespace != SAMLP_NS:
        raise MessageParseError(f"Not a SAML protocol message: {qname.text}")

    issuer = _text(root.find("saml:Issuer", SAML_NS))
    if issuer is None:
        first_assertion = root.find("saml:Assertion", SAML_NS)
        if first_assertion is not None:
            issuer = _text(first_assertion.find("saml:Issuer", SAML_NS))

    certificate = (idp_certificates or {}).get(issuer) if issuer else None

    response_verified: bool | None = None
    if certificate is not None and _has_signature(root):
        response_verified = _verify_signature(root, certificate)

    assertions = []
    if qname.localname == "Response":
        for assertion_elem in root.findall("saml:Assertion", SAML_NS):
            assertions.append(_parse_assertion(assertion_elem, certificate, response_verified))
        encrypted = root.findall("saml:EncryptedAssertion", SAML_NS)
        if encrypted:
            logger.warning(
                f"Ignoring {len(encrypted)} EncryptedAssertion element(s): decryption is not supported"
            )

    status_elem = root.find("samlp:Status/samlp:StatusCode", SAML_NS)

    return InboundMessage(
        message_type=qname.localname,
        message_id=root.get("ID", ""),
        issue_instant=_instant(root.get("IssueInstant"), "IssueInstant"),
        issuer=_text(root.find("saml:Issuer", SAML_NS)),
        in_response_to=root.get("InResponseTo"),
        destination=root.get("Destination"),
        status_code=status_elem.get("Value") if status_elem is not None else None,
        status_message=_text(root.find("samlp:Status/samlp:StatusMessage", SAML_NS)),
        assertions=tuple(assertions),
        signature_verified=response_verified,
    )
