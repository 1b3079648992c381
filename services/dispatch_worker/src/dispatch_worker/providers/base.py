"""Provider interface shared by every email and SMS vendor.

A provider wraps one vendor behind a uniform contract:

* ``can_send()`` gates on the active flag, availability and rate limit;
* ``is_ready`` is that gate without the rate limit, for status listings;
* ``send()`` performs the vendor call and raises typed errors;
* ``send_with_options()`` fails fast when the gate is closed, normalizes
  recipients, sends, and records stats whatever the outcome;
* ``test_connection()`` probes the vendor and flips availability.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, ClassVar

import httpx

from notify_shared.enums import AvailabilityStatus, Channel
from notify_shared.errors import (
    InvalidMessageError,
    InvalidRecipientError,
    NotificationError,
    ProviderConfigError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitExceededError,
    VendorError,
)
from notify_shared.schemas.providers import ProviderConfig

from dispatch_worker.providers.utils import (
    base_cost,
    normalize_phone,
    normalize_recipients,
    sms_segments,
    validate_email_address,
)
from dispatch_worker.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class EmailMessage:
    to: tuple[str, ...]
    subject: str
    html: str | None = None
    text: str | None = None
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    reply_to: str | None = None
    attachments: tuple[Attachment, ...] = ()
    template_id: str | None = None
    template_data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", normalize_recipients(self.to))
        object.__setattr__(self, "cc", normalize_recipients(self.cc))
        object.__setattr__(self, "bcc", normalize_recipients(self.bcc))

    @property
    def recipient_count(self) -> int:
        return len(self.to) + len(self.cc) + len(self.bcc)


@dataclass(frozen=True, slots=True)
class SmsMessage:
    to: tuple[str, ...]
    text: str
    sender: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", normalize_recipients(self.to))

    @property
    def recipient_count(self) -> int:
        return len(self.to)


Message = EmailMessage | SmsMessage


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of one send.

    ``success`` requires a ``message_id``; a failure carries at least one
    error string.
    """

    success: bool
    provider_id: str
    message_id: str | None = None
    cost: float = 0.0
    queued_at: datetime = field(default_factory=_utcnow)
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.success and not self.message_id:
            raise ValueError("A successful SendResult requires a message_id")
        if not self.success and not self.errors:
            raise ValueError("A failed SendResult requires at least one error")


@dataclass(slots=True)
class ProviderStats:
    sent: int = 0
    failed: int = 0
    total_cost: float = 0.0
    last_used_at: datetime | None = None


class Provider(ABC):
    """Base class for all vendor providers."""

    channel: ClassVar[Channel]
    required_config: ClassVar[tuple[str, ...]] = ()
    cost_per_message: ClassVar[float] = 0.0

    def __init__(
        self,
        config: ProviderConfig,
        *,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        missing = [key for key in self.required_config if not config.config.get(key)]
        if missing:
            raise ProviderConfigError(
                f"Missing required settings for {config.type}: {', '.join(missing)}",
                provider_type=config.type,
            )
        self._config = config
        self._availability = config.availability_status
        self._rate_limiter = rate_limiter
        self._http_client = http_client
        self._timeout = timeout
        self._stats = ProviderStats()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} priority={self.priority}>"

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def type(self) -> str:
        return self._config.type

    @property
    def priority(self) -> int:
        return self._config.priority

    @property
    def is_active(self) -> bool:
        return self._config.is_active

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def settings(self) -> dict[str, Any]:
        return self._config.config

    @property
    def availability_status(self) -> AvailabilityStatus:
        return self._availability

    @property
    def timeout(self) -> float:
        return self._timeout

    def mark_available(self) -> None:
        if self._availability != AvailabilityStatus.AVAILABLE:
            logger.info("Provider marked available", extra={"provider_id": self.id})
        self._availability = AvailabilityStatus.AVAILABLE

    def mark_unavailable(self, reason: str) -> None:
        logger.warning(
            "Provider marked unavailable",
            extra={"provider_id": self.id, "provider_type": self.type, "reason": reason},
        )
        self._availability = AvailabilityStatus.UNAVAILABLE

    # --- gating ------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """Active and available, without consuming rate limit quota."""
        return self.is_active and self._availability == AvailabilityStatus.AVAILABLE

    def can_send(self) -> bool:
        return self.is_ready and self._rate_limit_ok()

    def _rate_limit_ok(self) -> bool:
        limit = self._config.rate_limit
        if limit is None or self._rate_limiter is None:
            return True
        return self._rate_limiter.check(self.type, limit.max_per_minute)

    def _check_sendable(self) -> None:
        if not self.is_active:
            raise ProviderUnavailableError(
                f"Provider {self.id} is inactive", provider_type=self.type
            )
        if self._availability != AvailabilityStatus.AVAILABLE:
            raise ProviderUnavailableError(
                f"Provider {self.id} is unavailable", provider_type=self.type
            )
        if not self._rate_limit_ok():
            raise RateLimitExceededError(
                f"Rate limit reached for {self.type}", provider_type=self.type
            )

    # --- sending -----------------------------------------------------------

    @abstractmethod
    def send(self, message: Any) -> SendResult:
        """Perform the vendor call for an already-normalized message.

        Raises VendorError, RateLimitExceededError or ProviderTimeoutError.
        """

    @abstractmethod
    def prepare(self, message: Any) -> Any:
        """Validate and normalize recipients, returning the message to send."""

    def send_with_options(self, message: Any) -> SendResult:
        self._check_sendable()
        return self.deliver(self.prepare(message))

    def deliver(self, message: Any) -> SendResult:
        """Send without re-running the gate and record the outcome in stats."""
        try:
            result = self.send(message)
        except Exception:
            self._record(success=False, cost=0.0)
            raise
        self._record(success=result.success, cost=result.cost)
        return result

    def _record(self, *, success: bool, cost: float) -> None:
        if success:
            self._stats.sent += 1
            self._stats.total_cost += cost
        else:
            self._stats.failed += 1
        self._stats.last_used_at = _utcnow()

    def get_stats(self) -> ProviderStats:
        return replace(self._stats)

    def reset_stats(self) -> None:
        self._stats = ProviderStats()

    # --- health ------------------------------------------------------------

    @abstractmethod
    def _probe(self) -> bool:
        """Vendor-specific health check; may raise."""

    def test_connection(self) -> bool:
        try:
            ok = self._probe()
        except Exception as exc:
            logger.warning(
                "Provider connection test failed",
                extra={"provider_id": self.id, "provider_type": self.type, "error": str(exc)},
            )
            ok = False

        if ok:
            self.mark_available()
        else:
            self.mark_unavailable("connection test failed")
        return ok

    # --- cost --------------------------------------------------------------

    @property
    def rate(self) -> float:
        return float(self.settings.get("cost_per_message", self.cost_per_message))

    def estimate_cost(self, message: Any) -> float:
        return base_cost(self.rate, message.recipient_count)

    # --- HTTP --------------------------------------------------------------

    @property
    def http(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._timeout)
        return self._http_client

    def _http_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue one vendor request and map transport and status errors."""
        try:
            response = self.http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{self.type} request timed out after {self._timeout}s",
                provider_type=self.type,
            ) from exc
        except httpx.HTTPError as exc:
            raise VendorError(
                f"{self.type} request failed: {exc}", provider_type=self.type
            ) from exc

        status = response.status_code
        if status in (401, 403):
            self.mark_unavailable(f"HTTP {status}")
            raise VendorError(
                f"{self.type} rejected credentials (HTTP {status})",
                provider_type=self.type,
                auth=True,
                status_code=status,
            )
        if status == 429:
            raise RateLimitExceededError(
                f"{self.type} throttled the request", provider_type=self.type
            )
        if status >= 400:
            raise VendorError(
                f"{self.type} returned HTTP {status}: {response.text[:200]}",
                provider_type=self.type,
                status_code=status,
            )
        return response

    def _json_body(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise VendorError(
                f"{self.type} returned a non-JSON response (HTTP {response.status_code})",
                provider_type=self.type,
                status_code=response.status_code,
            ) from exc

    def _json_field(self, response: httpx.Response, *path: str | int) -> Any:
        """Walk ``path`` into a JSON body; a missing step is a vendor error."""
        value = self._json_body(response)
        try:
            for step in path:
                value = value[step]
        except (KeyError, IndexError, TypeError) as exc:
            raise VendorError(
                f"{self.type} response has no {'.'.join(map(str, path))}",
                provider_type=self.type,
                status_code=response.status_code,
            ) from exc
        return value

    def auth_failure(self, message: str) -> VendorError:
        self.mark_unavailable(message)
        return VendorError(message, provider_type=self.type, auth=True)


class EmailProvider(Provider):
    """Base for email vendors: ``from_email`` is always required."""

    channel = Channel.EMAIL

    @property
    def from_email(self) -> str:
        return self.settings["from_email"]

    @property
    def from_name(self) -> str | None:
        return self.settings.get("from_name")

    @property
    def formatted_from(self) -> str:
        if self.from_name:
            return f"{self.from_name} <{self.from_email}>"
        return self.from_email

    def default_reply_to(self, message: EmailMessage) -> str | None:
        return message.reply_to or self.settings.get("reply_to")

    def prepare(self, message: EmailMessage) -> EmailMessage:
        if not message.to:
            raise InvalidRecipientError("Email requires at least one recipient")
        if not message.subject:
            raise InvalidMessageError("Email requires a subject")
        if not (message.html or message.text or message.template_id):
            raise InvalidMessageError("Email requires html, text or a template")
        return replace(
            message,
            to=tuple(validate_email_address(a) for a in message.to),
            cc=tuple(validate_email_address(a) for a in message.cc),
            bcc=tuple(validate_email_address(a) for a in message.bcc),
        )

    def send_email(
        self,
        to: str | Iterable[str],
        subject: str,
        *,
        html: str | None = None,
        text: str | None = None,
        **options: Any,
    ) -> SendResult:
        """Convenience wrapper around ``send_with_options``."""
        message = EmailMessage(
            to=tuple(normalize_recipients(to)),
            subject=subject,
            html=html,
            text=text,
            **options,
        )
        return self.send_with_options(message)


class SmsProvider(Provider):
    """Base for SMS vendors.

    Vendors implement ``_send_one`` for a single E.164 number; ``send``
    fans out across recipients and succeeds if at least one delivery did.
    """

    channel = Channel.SMS

    def __init__(
        self,
        config: ProviderConfig,
        *,
        default_country_code: str = "33",
        **kwargs: Any,
    ) -> None:
        super().__init__(config, **kwargs)
        self._default_country_code = default_country_code

    @property
    def sender(self) -> str | None:
        return self.settings.get("from_number") or self.settings.get("sender_id")

    def prepare(self, message: SmsMessage) -> SmsMessage:
        if not message.to:
            raise InvalidRecipientError("SMS requires at least one recipient")
        if not message.text:
            raise InvalidMessageError("SMS requires a text body")
        return replace(
            message,
            to=tuple(
                normalize_phone(n, self._default_country_code) for n in message.to
            ),
        )

    @abstractmethod
    def _send_one(self, phone: str, message: SmsMessage) -> str:
        """Send to one number and return the vendor message id."""

    def send(self, message: SmsMessage) -> SendResult:
        message_ids: list[str] = []
        errors: list[str] = []
        last_error: NotificationError | None = None
        for phone in message.to:
            try:
                message_ids.append(self._send_one(phone, message))
            except NotificationError as exc:
                last_error = exc
                errors.append(f"{phone}: {exc.message}")
                if isinstance(exc, VendorError) and exc.auth:
                    break

        if not message_ids:
            if last_error is None:
                raise InvalidRecipientError("SMS requires at least one recipient")
            raise last_error

        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=",".join(message_ids),
            cost=base_cost(self.rate, len(message_ids)) * sms_segments(message.text),
            errors=tuple(errors),
        )

    def send_sms(self, to: str | Iterable[str], text: str) -> SendResult:
        return self.send_with_options(SmsMessage(to=tuple(normalize_recipients(to)), text=text))

    def estimate_cost(self, message: SmsMessage) -> float:
        return base_cost(self.rate, message.recipient_count) * sms_segments(message.text)
