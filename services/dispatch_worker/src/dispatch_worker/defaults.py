"""Static provider defaults read from the environment.

This is the last configuration tier, consulted when neither the tenant
nor the global provider collections hold an active config for a type.
SendGrid and Twilio are enabled out of the box; every other vendor is
opt-in through its ``<VENDOR>_ENABLED`` variable.
"""

from typing import Any, ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict

from notify_shared.enums import Channel, EmailProviderType, SmsProviderType
from notify_shared.schemas.providers import ProviderConfig, RateLimitSettings

_COMMON_FIELDS = frozenset({"enabled", "priority", "rate_limit_per_minute"})

DEFAULT_FROM_EMAIL = "noreply@attendancex.com"
DEFAULT_FROM_NAME = "AttendanceX"
DEFAULT_REPLY_TO = "support@attendancex.com"


class VendorSettings(BaseSettings):
    provider_id: ClassVar[str]
    provider_type: ClassVar[str]
    display_name: ClassVar[str]

    enabled: bool = False
    priority: int = 10
    rate_limit_per_minute: int | None = None

    def to_provider_config(self) -> ProviderConfig:
        settings: dict[str, Any] = {
            key: value
            for key, value in self.model_dump().items()
            if key not in _COMMON_FIELDS and value not in (None, "")
        }
        rate_limit = None
        if self.rate_limit_per_minute:
            rate_limit = RateLimitSettings(max_per_minute=self.rate_limit_per_minute)
        return ProviderConfig(
            id=self.provider_id,
            type=self.provider_type,
            name=self.display_name,
            priority=self.priority,
            is_active=self.enabled,
            config=settings,
            rate_limit=rate_limit,
        )


class _EmailSenderSettings(VendorSettings):
    from_email: str = DEFAULT_FROM_EMAIL
    from_name: str = DEFAULT_FROM_NAME
    reply_to: str = DEFAULT_REPLY_TO


class SendGridSettings(_EmailSenderSettings):
    model_config = SettingsConfigDict(env_prefix="SENDGRID_")
    provider_id: ClassVar[str] = "sendgrid-primary"
    provider_type: ClassVar[str] = EmailProviderType.SENDGRID.value
    display_name: ClassVar[str] = "SendGrid"

    enabled: bool = True
    priority: int = 1
    rate_limit_per_minute: int | None = 60
    api_key: str = ""


class MailgunSettings(_EmailSenderSettings):
    model_config = SettingsConfigDict(env_prefix="MAILGUN_")
    provider_id: ClassVar[str] = "mailgun-backup"
    provider_type: ClassVar[str] = EmailProviderType.MAILGUN.value
    display_name: ClassVar[str] = "Mailgun"

    priority: int = 2
    rate_limit_per_minute: int | None = 50
    api_key: str = ""
    domain: str = ""
    base_url: str = "https://api.mailgun.net/v3"


class SesSettings(_EmailSenderSettings):
    model_config = SettingsConfigDict(env_prefix="AWS_SES_")
    provider_id: ClassVar[str] = "aws-ses-backup"
    provider_type: ClassVar[str] = EmailProviderType.AWS_SES.value
    display_name: ClassVar[str] = "Amazon SES"

    priority: int = 3
    rate_limit_per_minute: int | None = 100
    region: str = "eu-west-1"
    access_key_id: str = ""
    secret_access_key: str = ""
    configuration_set: str = ""


class SmtpSettings(_EmailSenderSettings):
    model_config = SettingsConfigDict(env_prefix="SMTP_")
    provider_id: ClassVar[str] = "smtp-local"
    provider_type: ClassVar[str] = EmailProviderType.SMTP.value
    display_name: ClassVar[str] = "SMTP"

    priority: int = 4
    rate_limit_per_minute: int | None = 30
    host: str = "localhost"
    port: int = 587
    secure: bool = False
    use_tls: bool = True
    username: str = ""
    password: str = ""


class ResendSettings(_EmailSenderSettings):
    model_config = SettingsConfigDict(env_prefix="RESEND_")
    provider_id: ClassVar[str] = "resend-backup"
    provider_type: ClassVar[str] = EmailProviderType.RESEND.value
    display_name: ClassVar[str] = "Resend"

    priority: int = 5
    rate_limit_per_minute: int | None = 100
    api_key: str = ""


class TwilioSettings(VendorSettings):
    model_config = SettingsConfigDict(env_prefix="TWILIO_")
    provider_id: ClassVar[str] = "twilio-primary"
    provider_type: ClassVar[str] = SmsProviderType.TWILIO.value
    display_name: ClassVar[str] = "Twilio"

    enabled: bool = True
    priority: int = 1
    rate_limit_per_minute: int | None = 10
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""


class VonageSettings(VendorSettings):
    model_config = SettingsConfigDict(env_prefix="VONAGE_")
    provider_id: ClassVar[str] = "vonage-backup"
    provider_type: ClassVar[str] = SmsProviderType.VONAGE.value
    display_name: ClassVar[str] = "Vonage"

    priority: int = 2
    rate_limit_per_minute: int | None = 10
    api_key: str = ""
    api_secret: str = ""
    from_number: str = ""


class SnsSettings(VendorSettings):
    model_config = SettingsConfigDict(env_prefix="AWS_SNS_")
    provider_id: ClassVar[str] = "aws-sns-backup"
    provider_type: ClassVar[str] = SmsProviderType.AWS_SNS.value
    display_name: ClassVar[str] = "Amazon SNS"

    priority: int = 3
    rate_limit_per_minute: int | None = 10
    region: str = "eu-west-1"
    access_key_id: str = ""
    secret_access_key: str = ""
    sender_id: str = ""
    sms_type: str = "Transactional"


class CustomSmsSettings(VendorSettings):
    model_config = SettingsConfigDict(env_prefix="CUSTOM_SMS_")
    provider_id: ClassVar[str] = "custom-api-sms"
    provider_type: ClassVar[str] = SmsProviderType.CUSTOM_API.value
    display_name: ClassVar[str] = "Custom SMS API"

    priority: int = 4
    url: str = ""
    method: str = "POST"
    from_number: str = ""
    payload_format: str = "json"
    headers: dict[str, str] | None = None
    auth: dict[str, str] | None = None
    payload_template: dict[str, str] | None = None
    response_mapping: dict[str, Any] | None = None
    health_url: str = ""


_SETTINGS_BY_CHANNEL: dict[Channel, tuple[type[VendorSettings], ...]] = {
    Channel.EMAIL: (
        SendGridSettings,
        MailgunSettings,
        SesSettings,
        SmtpSettings,
        ResendSettings,
    ),
    Channel.SMS: (
        TwilioSettings,
        VonageSettings,
        SnsSettings,
        CustomSmsSettings,
    ),
}


def load_static_defaults(channel: str) -> dict[str, ProviderConfig]:
    """Build the static tier for *channel* from the current environment."""
    return {
        settings_cls.provider_type: settings_cls().to_provider_config()
        for settings_cls in _SETTINGS_BY_CHANNEL[Channel(channel)]
    }
