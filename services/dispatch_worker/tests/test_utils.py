import pytest

from notify_shared.errors import InvalidRecipientError

from dispatch_worker.providers.utils import (
    normalize_phone,
    normalize_recipients,
    sms_segments,
    validate_email_address,
)


class TestNormalizePhone:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("+33612345678", "+33612345678"),
            ("06 12 34 56 78", "+33612345678"),
            ("0033 6 12 34 56 78", "+33612345678"),
            ("14155550100", "+14155550100"),
        ],
    )
    def test_normalizes_to_e164(self, raw: str, expected: str) -> None:
        assert normalize_phone(raw) == expected

    def test_custom_country_code(self) -> None:
        assert normalize_phone("07700 900123", "44") == "+447700900123"

    @pytest.mark.parametrize("raw", ["", "+0123456789", "12", "+33 6 12 34 ab 78"])
    def test_rejects_invalid(self, raw: str) -> None:
        with pytest.raises(InvalidRecipientError):
            normalize_phone(raw)


class TestRecipients:
    def test_single_string(self) -> None:
        assert normalize_recipients(" a@example.com ") == ("a@example.com",)

    def test_deduplicates_preserving_order(self) -> None:
        assert normalize_recipients(["b@x.io", "a@x.io", "b@x.io", " "]) == ("b@x.io", "a@x.io")

    def test_invalid_email(self) -> None:
        with pytest.raises(InvalidRecipientError):
            validate_email_address("nobody@localhost")


class TestValidateEmailAddress:
    def test_normalizes_domain_case(self) -> None:
        assert validate_email_address(" Ada@Example.COM ") == "Ada@example.com"

    @pytest.mark.parametrize(
        "address",
        ["a..b@example.com", ".ada@example.com", "ada@-example.com", "ada@example", "ada@@example.com"],
    )
    def test_rejects_what_request_schemas_reject(self, address: str) -> None:
        with pytest.raises(InvalidRecipientError, match="Invalid email address"):
            validate_email_address(address)

    def test_internationalized_address(self) -> None:
        assert validate_email_address("jos\u00e9@example.com") == "jos\u00e9@example.com"


class TestSegments:
    @pytest.mark.parametrize(("length", "segments"), [(0, 1), (160, 1), (161, 2), (480, 3)])
    def test_segments(self, length: int, segments: int) -> None:
        assert sms_segments("x" * length) == segments
