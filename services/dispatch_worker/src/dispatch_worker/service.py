"""Channel-agnostic entry point for sending one email or SMS."""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from notify_shared.enums import Channel
from notify_shared.errors import InvalidMessageError, InvalidRecipientError

from dispatch_worker.dispatcher import Attempt, FailoverDispatcher, FailoverResult
from dispatch_worker.providers.base import (
    Attachment,
    EmailMessage,
    Message,
    Provider,
    SmsMessage,
)
from dispatch_worker.providers.utils import (
    normalize_phone,
    normalize_recipients,
    validate_email_address,
)
from dispatch_worker.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class NotificationService:
    """Validates a request and routes it to a pinned provider or to failover.

    With ``provider`` set, errors from that provider propagate to the
    caller. Without it, the failover dispatcher tries every active
    provider in priority order and only reports total exhaustion.
    """

    def __init__(
        self,
        email_registry: ProviderRegistry,
        sms_registry: ProviderRegistry,
        *,
        default_country_code: str = "33",
    ) -> None:
        self._dispatchers = {
            Channel.EMAIL: FailoverDispatcher(email_registry),
            Channel.SMS: FailoverDispatcher(sms_registry),
        }
        self._default_country_code = default_country_code

    def registry(self, channel: str) -> ProviderRegistry:
        return self._dispatchers[Channel(channel)].registry

    def send_email(
        self,
        to: str | Iterable[str],
        subject: str,
        *,
        html: str | None = None,
        text: str | None = None,
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
        reply_to: str | None = None,
        attachments: Sequence[Attachment] = (),
        template_id: str | None = None,
        template_data: dict[str, Any] | None = None,
        provider: str | None = None,
        tenant_id: str | None = None,
    ) -> FailoverResult:
        recipients = normalize_recipients(to)
        if not recipients:
            raise InvalidRecipientError("At least one recipient is required")
        if not subject:
            raise InvalidMessageError("Email subject is required")
        if not (html or text or template_id):
            raise InvalidMessageError("Email content (html, text or template) is required")

        message = EmailMessage(
            to=tuple(validate_email_address(a) for a in recipients),
            subject=subject,
            html=html,
            text=text,
            cc=tuple(validate_email_address(a) for a in normalize_recipients(cc)),
            bcc=tuple(validate_email_address(a) for a in normalize_recipients(bcc)),
            reply_to=reply_to,
            attachments=tuple(attachments),
            template_id=template_id,
            template_data=dict(template_data or {}),
        )
        return self._send(Channel.EMAIL, message, provider, tenant_id)

    def send_sms(
        self,
        to: str | Iterable[str],
        text: str,
        *,
        sender: str | None = None,
        provider: str | None = None,
        tenant_id: str | None = None,
    ) -> FailoverResult:
        recipients = normalize_recipients(to)
        if not recipients:
            raise InvalidRecipientError("At least one phone number is required")
        if not text:
            raise InvalidMessageError("SMS text is required")

        message = SmsMessage(
            to=tuple(normalize_phone(n, self._default_country_code) for n in recipients),
            text=text,
            sender=sender,
        )
        return self._send(Channel.SMS, message, provider, tenant_id)

    def available_providers(
        self, channel: str, tenant_id: str | None = None
    ) -> list[Provider]:
        return self.registry(channel).get_all_providers(tenant_id)

    def test_all_providers(
        self, channel: str, tenant_id: str | None = None
    ) -> dict[str, bool]:
        return self.registry(channel).test_all_providers(tenant_id)

    def _send(
        self,
        channel: Channel,
        message: Message,
        provider_type: str | None,
        tenant_id: str | None,
    ) -> FailoverResult:
        dispatcher = self._dispatchers[channel]
        if provider_type is None:
            return dispatcher.send_with_failover(message, tenant_id)

        provider = dispatcher.registry.get_provider_for_tenant(provider_type, tenant_id)
        result = provider.send_with_options(message)
        logger.info(
            "Message sent via pinned provider",
            extra={
                "channel": channel.value,
                "provider_id": provider.id,
                "message_id": result.message_id,
                "tenant_id": tenant_id,
            },
        )
        return FailoverResult(
            success=result.success,
            provider=provider.type,
            result=result,
            error=None if result.success else "; ".join(result.errors),
            attempts=(Attempt(provider.type, provider.id, "sent" if result.success else "failed"),),
        )
