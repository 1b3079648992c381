"""AWS providers: SES (email) and SNS (SMS) through boto3."""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from email.message import EmailMessage as MimeMessage
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from notify_shared.errors import ProviderTimeoutError, RateLimitExceededError, VendorError

from dispatch_worker.providers.base import (
    EmailMessage,
    EmailProvider,
    Provider,
    SendResult,
    SmsMessage,
    SmsProvider,
)

logger = logging.getLogger(__name__)

_AUTH_ERROR_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "AuthorizationError",
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "UnrecognizedClientException",
    "ExpiredToken",
})
_THROTTLE_ERROR_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "ThrottledException",
})

_BYTES_PER_MB = 1024 * 1024
SES_ATTACHMENT_COST_PER_MB = 0.00012

ClientFactory = Callable[..., Any]


def build_client(provider: Provider, service_name: str, factory: ClientFactory) -> Any:
    """Create a boto3 client with single-attempt calls bounded by the provider timeout."""
    settings = provider.settings
    credentials = {}
    if settings.get("access_key_id"):
        credentials = {
            "aws_access_key_id": settings["access_key_id"],
            "aws_secret_access_key": settings.get("secret_access_key"),
        }
    return factory(
        service_name,
        region_name=settings["region"],
        config=Config(
            connect_timeout=provider.timeout,
            read_timeout=provider.timeout,
            retries={"max_attempts": 1},
        ),
        **credentials,
    )


@contextmanager
def aws_errors(provider: Provider) -> Iterator[None]:
    """Map botocore errors onto the notification error taxonomy."""
    try:
        yield
    except ClientError as exc:
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        detail = error.get("Message", str(exc))
        if code in _AUTH_ERROR_CODES:
            raise provider.auth_failure(
                f"{provider.type} authorization failed: {detail}"
            ) from exc
        if code in _THROTTLE_ERROR_CODES:
            raise RateLimitExceededError(
                f"{provider.type} throttled the request", provider_type=provider.type
            ) from exc
        raise VendorError(
            f"{provider.type} error {code}: {detail}", provider_type=provider.type
        ) from exc
    except (ConnectTimeoutError, ReadTimeoutError) as exc:
        raise ProviderTimeoutError(
            f"{provider.type} timed out after {provider.timeout}s",
            provider_type=provider.type,
        ) from exc
    except BotoCoreError as exc:
        raise VendorError(
            f"{provider.type} request failed: {exc}", provider_type=provider.type
        ) from exc


class SesProvider(EmailProvider):
    """Amazon SES v2. Attachments switch the request to raw MIME content."""

    required_config = ("region", "from_email")
    cost_per_message = 0.0001

    def __init__(self, *args: Any, client_factory: ClientFactory | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client_factory = client_factory or boto3.client
        self._client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = build_client(self, "sesv2", self._client_factory)
        return self._client

    def _content(self, message: EmailMessage) -> dict[str, Any]:
        if message.attachments:
            mime = MimeMessage()
            mime["From"] = self.formatted_from
            mime["To"] = ", ".join(message.to)
            mime["Subject"] = message.subject
            mime.set_content(message.text or "")
            if message.html:
                mime.add_alternative(message.html, subtype="html")
            for attachment in message.attachments:
                maintype, _, subtype = attachment.content_type.partition("/")
                mime.add_attachment(
                    attachment.content,
                    maintype=maintype,
                    subtype=subtype or "octet-stream",
                    filename=attachment.filename,
                )
            return {"Raw": {"Data": mime.as_bytes()}}

        body: dict[str, Any] = {}
        if message.text:
            body["Text"] = {"Data": message.text, "Charset": "UTF-8"}
        if message.html:
            body["Html"] = {"Data": message.html, "Charset": "UTF-8"}
        return {
            "Simple": {
                "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                "Body": body,
            }
        }

    def send(self, message: EmailMessage) -> SendResult:
        request: dict[str, Any] = {
            "FromEmailAddress": self.formatted_from,
            "Destination": {
                "ToAddresses": list(message.to),
                "CcAddresses": list(message.cc),
                "BccAddresses": list(message.bcc),
            },
            "Content": self._content(message),
        }
        reply_to = self.default_reply_to(message)
        if reply_to:
            request["ReplyToAddresses"] = [reply_to]
        if self.settings.get("configuration_set"):
            request["ConfigurationSetName"] = self.settings["configuration_set"]

        with aws_errors(self):
            response = self.client.send_email(**request)

        message_id = response["MessageId"]
        logger.info(
            "Email sent",
            extra={"provider_id": self.id, "message_id": message_id, "recipients": len(message.to)},
        )
        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=message_id,
            cost=self.estimate_cost(message),
        )

    def estimate_cost(self, message: EmailMessage) -> float:
        size = sum(len(a.content) for a in message.attachments)
        surcharge = (size / _BYTES_PER_MB) * SES_ATTACHMENT_COST_PER_MB
        return super().estimate_cost(message) + surcharge * message.recipient_count

    def _probe(self) -> bool:
        with aws_errors(self):
            account = self.client.get_account()
        return bool(account.get("SendingEnabled", True))


class SnsProvider(SmsProvider):
    required_config = ("region",)
    cost_per_message = 0.00645

    def __init__(self, *args: Any, client_factory: ClientFactory | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client_factory = client_factory or boto3.client
        self._client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = build_client(self, "sns", self._client_factory)
        return self._client

    def _send_one(self, phone: str, message: SmsMessage) -> str:
        attributes = {
            "AWS.SNS.SMS.SMSType": {
                "DataType": "String",
                "StringValue": self.settings.get("sms_type", "Transactional"),
            }
        }
        sender = message.sender or self.sender
        if sender:
            attributes["AWS.SNS.SMS.SenderID"] = {"DataType": "String", "StringValue": sender}

        with aws_errors(self):
            response = self.client.publish(
                PhoneNumber=phone,
                Message=message.text,
                MessageAttributes=attributes,
            )
        logger.info("SMS sent", extra={"provider_id": self.id, "message_id": response["MessageId"]})
        return response["MessageId"]

    def _probe(self) -> bool:
        with aws_errors(self):
            self.client.get_sms_attributes(attributes=["DefaultSMSType"])
        return True
