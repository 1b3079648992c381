"""Tests for NotificationService input validation and routing."""

import pytest

from notify_shared.errors import (
    InvalidMessageError,
    InvalidRecipientError,
    UnsupportedProviderTypeError,
    VendorError,
)

from dispatch_worker.registry import ProviderRegistry
from dispatch_worker.service import NotificationService


@pytest.fixture()
def service(email_registry: ProviderRegistry, sms_registry: ProviderRegistry) -> NotificationService:
    return NotificationService(email_registry, sms_registry)


class TestSendEmail:
    def test_failover_send(self, service: NotificationService) -> None:
        result = service.send_email(
            [" ada@example.com", "ada@example.com"], "Hello", html="<p>Hi</p>"
        )

        assert result.success is True
        assert result.provider == "alpha"
        sent = service.registry("email").get_provider("alpha").sent[0]
        assert sent.to == ("ada@example.com",)
        assert sent.html == "<p>Hi</p>"

    def test_blank_recipients_dropped(self, service: NotificationService) -> None:
        service.send_email(["a@example.com", "  ", "b@example.com"], "Hello", text="Hi")

        sent = service.registry("email").get_provider("alpha").sent[0]
        assert sent.to == ("a@example.com", "b@example.com")

    @pytest.mark.parametrize(
        ("kwargs", "error"),
        [
            ({"to": [], "subject": "s", "text": "t"}, InvalidRecipientError),
            ({"to": "a@example.com", "subject": "", "text": "t"}, InvalidMessageError),
            ({"to": "a@example.com", "subject": "s"}, InvalidMessageError),
            ({"to": "not-an-address", "subject": "s", "text": "t"}, InvalidRecipientError),
        ],
    )
    def test_rejects_invalid_input(
        self, service: NotificationService, kwargs: dict, error: type[Exception]
    ) -> None:
        with pytest.raises(error):
            service.send_email(**kwargs)

    def test_template_id_counts_as_content(self, service: NotificationService) -> None:
        result = service.send_email(
            "a@example.com", "Hello", template_id="d-123", template_data={"name": "Ada"}
        )

        assert result.success is True

    def test_pinned_provider_bypasses_failover(self, service: NotificationService) -> None:
        result = service.send_email("a@example.com", "Hello", text="Hi", provider="gamma")

        assert result.provider == "gamma"
        assert service.registry("email").get_provider("alpha").sent == []

    def test_pinned_provider_errors_propagate(self, service: NotificationService) -> None:
        service.registry("email").get_provider("alpha").fail_with = VendorError(
            "down", provider_type="alpha"
        )

        with pytest.raises(VendorError):
            service.send_email("a@example.com", "Hello", text="Hi", provider="alpha")
        assert service.registry("email").get_provider("beta").sent == []

    def test_unknown_pinned_provider(self, service: NotificationService) -> None:
        with pytest.raises(UnsupportedProviderTypeError):
            service.send_email("a@example.com", "Hello", text="Hi", provider="nope")


class TestSendSms:
    def test_normalizes_numbers(self, service: NotificationService) -> None:
        result = service.send_sms("06 12 34 56 78", "Your PIN is 123456")

        assert result.success is True
        assert service.registry("sms").get_provider("one").sent == [
            ("+33612345678", "Your PIN is 123456")
        ]

    def test_requires_text(self, service: NotificationService) -> None:
        with pytest.raises(InvalidMessageError):
            service.send_sms("+33612345678", "")

    def test_rejects_garbage_number(self, service: NotificationService) -> None:
        with pytest.raises(InvalidRecipientError):
            service.send_sms("call me", "Hi")

    def test_tenant_routing(self, service: NotificationService) -> None:
        service.send_sms("+33612345678", "Hi", tenant_id="acme")

        assert service.registry("sms").get_provider_for_tenant("one", "acme").sent
        assert service.registry("sms").get_provider("one").sent == []


class TestProviderQueries:
    def test_available_providers(self, service: NotificationService) -> None:
        types = [p.type for p in service.available_providers("sms")]

        assert types == ["one", "two"]

    def test_all_providers(self, service: NotificationService) -> None:
        assert service.test_all_providers("email") == {"alpha": True, "beta": True, "gamma": True}
