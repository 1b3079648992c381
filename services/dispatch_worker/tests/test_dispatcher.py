"""Tests for priority-ordered failover."""

from unittest.mock import MagicMock

from notify_shared.errors import VendorError

from dispatch_worker.dispatcher import FailoverDispatcher
from dispatch_worker.providers.base import EmailMessage, SendResult
from dispatch_worker.registry import ProviderRegistry


def _message() -> EmailMessage:
    return EmailMessage(to=("ada@example.com",), subject="Hi", text="Hello")


class TestSendWithFailover:
    def test_first_provider_wins(self, email_registry: ProviderRegistry) -> None:
        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.success is True
        assert result.provider == "alpha"
        assert result.result.message_id == "alpha-1-1"
        assert [a.outcome for a in result.attempts] == ["sent"]
        assert email_registry.get_provider("beta").sent == []

    def test_falls_over_on_vendor_error(self, email_registry: ProviderRegistry) -> None:
        email_registry.get_provider("alpha").fail_with = VendorError("down", provider_type="alpha")

        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.success is True
        assert result.provider == "beta"
        assert [(a.provider_type, a.outcome) for a in result.attempts] == [
            ("alpha", "failed"),
            ("beta", "sent"),
        ]
        assert email_registry.get_provider("gamma").sent == []
        assert email_registry.get_provider("alpha").get_stats().failed == 1

    def test_unexpected_exception_falls_over(self, email_registry: ProviderRegistry) -> None:
        email_registry.get_provider("alpha").fail_with = RuntimeError("socket closed")

        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.provider == "beta"
        assert result.attempts[0].error == "socket closed"

    def test_skips_providers_that_cannot_send(self, email_registry: ProviderRegistry) -> None:
        email_registry.get_provider("alpha").mark_unavailable("maintenance")

        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.provider == "beta"
        assert result.attempts[0].outcome == "skipped"
        assert email_registry.get_provider("alpha").sent == []

    def test_unsuccessful_result_falls_over(self, email_registry: ProviderRegistry) -> None:
        alpha = email_registry.get_provider("alpha")
        alpha.send = MagicMock(
            return_value=SendResult(success=False, provider_id=alpha.id, errors=("bounced",))
        )

        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.provider == "beta"
        assert result.attempts[0].error == "bounced"

    def test_all_providers_fail(self, email_registry: ProviderRegistry) -> None:
        for name in ("alpha", "beta", "gamma"):
            email_registry.get_provider(name).fail_with = VendorError(
                f"{name} down", provider_type=name
            )

        result = FailoverDispatcher(email_registry).send_with_failover(_message())

        assert result.success is False
        assert result.error == "gamma down"
        assert len(result.attempts) == 3
        assert result.to_dict() == {"success": False, "error": "gamma down"}

    def test_no_providers(self) -> None:
        registry = MagicMock(spec=ProviderRegistry)
        registry.get_all_providers.return_value = []
        registry.channel.value = "sms"

        result = FailoverDispatcher(registry).send_with_failover(_message())

        assert result.success is False
        assert result.error == "No sms provider available"

    def test_tenant_passed_to_registry(self, email_registry: ProviderRegistry) -> None:
        result = FailoverDispatcher(email_registry).send_with_failover(_message(), "acme")

        assert result.success is True
        assert email_registry.get_provider("alpha").sent == []
        assert len(email_registry.get_provider_for_tenant("alpha", "acme").sent) == 1

    def test_success_to_dict(self, email_registry: ProviderRegistry) -> None:
        body = FailoverDispatcher(email_registry).send_with_failover(_message()).to_dict()

        assert body == {
            "success": True,
            "provider": "alpha",
            "message_id": "alpha-1-1",
            "cost": 0.001,
        }
