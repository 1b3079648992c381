from enum import StrEnum


class Channel(StrEnum):
    EMAIL = "email"
    SMS = "sms"


class EmailProviderType(StrEnum):
    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    AWS_SES = "aws_ses"
    SMTP = "smtp"
    RESEND = "resend"


class SmsProviderType(StrEnum):
    TWILIO = "twilio"
    VONAGE = "vonage"
    AWS_SNS = "aws_sns"
    CUSTOM_API = "custom_api"


PROVIDER_TYPES_BY_CHANNEL: dict[Channel, tuple[str, ...]] = {
    Channel.EMAIL: tuple(t.value for t in EmailProviderType),
    Channel.SMS: tuple(t.value for t in SmsProviderType),
}


class AvailabilityStatus(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class AccessCodeKind(StrEnum):
    PIN = "pin"
    QR = "qr"


class CampaignStatus(StrEnum):
    QUEUED = "queued"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"
