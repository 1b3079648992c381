"""Vendor provider classes, keyed by provider type per channel.

Dict order is the registration order used to break priority ties.
"""

from notify_shared.enums import Channel, EmailProviderType, SmsProviderType

from dispatch_worker.providers.aws import SesProvider, SnsProvider
from dispatch_worker.providers.base import (
    Attachment,
    EmailMessage,
    EmailProvider,
    Provider,
    ProviderStats,
    SendResult,
    SmsMessage,
    SmsProvider,
)
from dispatch_worker.providers.custom_api import CustomApiSmsProvider
from dispatch_worker.providers.email import MailgunProvider, ResendProvider, SendGridProvider
from dispatch_worker.providers.sms import TwilioProvider, VonageProvider
from dispatch_worker.providers.smtp import SmtpProvider

EMAIL_PROVIDERS: dict[str, type[Provider]] = {
    EmailProviderType.SENDGRID.value: SendGridProvider,
    EmailProviderType.MAILGUN.value: MailgunProvider,
    EmailProviderType.AWS_SES.value: SesProvider,
    EmailProviderType.SMTP.value: SmtpProvider,
    EmailProviderType.RESEND.value: ResendProvider,
}

SMS_PROVIDERS: dict[str, type[Provider]] = {
    SmsProviderType.TWILIO.value: TwilioProvider,
    SmsProviderType.VONAGE.value: VonageProvider,
    SmsProviderType.AWS_SNS.value: SnsProvider,
    SmsProviderType.CUSTOM_API.value: CustomApiSmsProvider,
}

PROVIDERS_BY_CHANNEL: dict[Channel, dict[str, type[Provider]]] = {
    Channel.EMAIL: EMAIL_PROVIDERS,
    Channel.SMS: SMS_PROVIDERS,
}

__all__ = [
    "Attachment",
    "EmailMessage",
    "EmailProvider",
    "Provider",
    "ProviderStats",
    "SendResult",
    "SmsMessage",
    "SmsProvider",
    "EMAIL_PROVIDERS",
    "SMS_PROVIDERS",
    "PROVIDERS_BY_CHANNEL",
]
