"""Tests for bearer subject confirmation."""

from datetime import timedelta

import pytest

from factories import ACS_URL, NOW, make_confirmation, make_context
from samlrp.core.saml.confirmation import SubjectConfirmationValidator
from samlrp.core.saml.errors import (
    SubjectConfirmationFailedError,
    UnsupportedConfirmationMethodError,
)
from samlrp.core.saml.model import SubjectConfirmation

HOLDER_OF_KEY = "urn:oasis:names:tc:SAML:2.0:cm:holder-of-key"


@pytest.fixture
def validator(validation_logger) -> SubjectConfirmationValidator:
    return SubjectConfirmationValidator(validation_logger=validation_logger)


class TestBearerConfirmation:
    """Tests for a single bearer confirmation."""

    def test_valid_bearer(self, validator):
        confirmation = make_confirmation()
        assert validator.validate([confirmation], make_context(), NOW) is confirmation

    def test_missing_data(self, validator):
        with pytest.raises(SubjectConfirmationFailedError, match="SubjectConfirmationData"):
            validator.validate(
                [SubjectConfirmation(method=make_confirmation().method)], make_context(), NOW
            )

    def test_missing_not_on_or_after(self, validator):
        with pytest.raises(SubjectConfirmationFailedError, match="NotOnOrAfter is missing"):
            validator.validate([make_confirmation(not_on_or_after=None)], make_context(), NOW)

    def test_expired(self, validator):
        confirmation = make_confirmation(not_on_or_after=NOW - timedelta(minutes=2))
        with pytest.raises(SubjectConfirmationFailedError, match="has passed"):
            validator.validate([confirmation], make_context(), NOW)

    def test_expired_within_skew(self, validator):
        confirmation = make_confirmation(not_on_or_after=NOW - timedelta(seconds=30))
        validator.validate([confirmation], make_context(), NOW)

    def test_not_before_in_future(self, validator):
        confirmation = make_confirmation(not_before=NOW + timedelta(minutes=2))
        with pytest.raises(SubjectConfirmationFailedError, match="in the future"):
            validator.validate([confirmation], make_context(), NOW)

    def test_recipient_mismatch(self, validator):
        confirmation = make_confirmation(recipient="https://attacker.example.com/acs")
        with pytest.raises(SubjectConfirmationFailedError, match="Recipient"):
            validator.validate([confirmation], make_context(), NOW)

    @pytest.mark.parametrize(
        "recipient",
        [
            ACS_URL + "/",
            ACS_URL.upper(),
            " " + ACS_URL,
            ACS_URL + " ",
        ],
    )
    def test_recipient_must_match_exactly(self, validator, recipient):
        """Test recipients differing only by case, whitespace or a slash are rejected."""
        confirmation = make_confirmation(recipient=recipient)
        with pytest.raises(SubjectConfirmationFailedError, match="Recipient"):
            validator.validate([confirmation], make_context(), NOW)

    def test_absent_recipient_accepted(self, validator):
        validator.validate([make_confirmation(recipient=None)], make_context(), NOW)

    def test_in_response_to_mismatch(self, validator):
        confirmation = make_confirmation(in_response_to="_other-request")
        with pytest.raises(SubjectConfirmationFailedError, match="InResponseTo"):
            validator.validate([confirmation], make_context(), NOW)

    def test_in_response_to_ignored_when_unsolicited(self, validator):
        confirmation = make_confirmation(in_response_to="_other-request")
        validator.validate([confirmation], make_context(expected_in_response_to=None), NOW)


class TestConfirmationSelection:
    """Tests for choosing among several confirmations."""

    def test_no_confirmations(self, validator):
        with pytest.raises(UnsupportedConfirmationMethodError):
            validator.validate([], make_context(), NOW)

    def test_only_holder_of_key(self, validator):
        with pytest.raises(UnsupportedConfirmationMethodError, match="holder-of-key"):
            validator.validate([make_confirmation(method=HOLDER_OF_KEY)], make_context(), NOW)

    def test_first_satisfied_bearer_selected(self, validator):
        bad = make_confirmation(recipient="https://attacker.example.com/acs")
        good = make_confirmation(recipient=ACS_URL)
        assert validator.validate([bad, good], make_context(), NOW) is good

    def test_non_bearer_skipped(self, validator):
        bearer = make_confirmation()
        result = validator.validate(
            [make_confirmation(method=HOLDER_OF_KEY), bearer], make_context(), NOW
        )
        assert result is bearer

    def test_reports_last_failure(self, validator):
        first = make_confirmation(recipient="https://attacker.example.com/acs")
        second = make_confirmation(not_on_or_after=NOW - timedelta(hours=1))
        with pytest.raises(SubjectConfirmationFailedError, match="has passed"):
            validator.validate([first, second], make_context(), NOW)
