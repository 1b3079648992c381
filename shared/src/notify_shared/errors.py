"""Error taxonomy shared by the dispatch worker and the API gateway.

Every error carries a machine-readable ``code`` that HTTP handlers copy
into their JSON error bodies.
"""


class NotificationError(Exception):
    """Base class for all notification errors."""

    code = "notification_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        provider_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.provider_type = provider_type

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.message, "code": self.code}
        if self.provider_type is not None:
            body["provider"] = self.provider_type
        return body


class ConfigNotFoundError(NotificationError):
    """No configuration tier yielded a usable provider config."""

    code = "config_not_found"


class UnsupportedProviderTypeError(NotificationError):
    """The requested provider type has no constructor for the channel."""

    code = "unsupported_provider_type"


class ProviderConfigError(NotificationError):
    """A provider config is missing required credentials or settings."""

    code = "invalid_config"


class ProviderUnavailableError(NotificationError):
    """The provider is inactive or marked unavailable."""

    code = "provider_unavailable"


class RateLimitExceededError(NotificationError):
    """Rejected by the per-minute rate limiter or by vendor throttling."""

    code = "rate_limit_exceeded"


class VendorError(NotificationError):
    """Wraps an SDK or HTTP error raised by a vendor.

    The code is ``<vendor>_error`` or ``<vendor>_auth_error``; for auth
    errors the provider has already been marked unavailable.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_type: str,
        auth: bool = False,
        status_code: int | None = None,
    ) -> None:
        suffix = "auth_error" if auth else "error"
        super().__init__(
            message,
            code=f"{provider_type}_{suffix}",
            provider_type=provider_type,
        )
        self.auth = auth
        self.status_code = status_code


class ProviderTimeoutError(NotificationError):
    """A single vendor attempt exceeded its timeout."""

    code = "timed_out"


class InvalidRecipientError(NotificationError):
    code = "invalid_recipient"


class InvalidMessageError(NotificationError):
    code = "invalid_message"


class NotFoundError(NotificationError):
    code = "not_found"


class DuplicateError(NotificationError):
    code = "duplicate"
