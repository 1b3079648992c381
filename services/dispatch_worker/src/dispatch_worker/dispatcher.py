"""Priority-ordered failover across the providers of one channel."""

import logging
from dataclasses import dataclass, field

from notify_shared.errors import NotificationError

from dispatch_worker.providers.base import Message, Provider, SendResult
from dispatch_worker.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Attempt:
    provider_type: str
    provider_id: str
    outcome: str  # "sent" | "skipped" | "failed"
    error: str | None = None


@dataclass(frozen=True, slots=True)
class FailoverResult:
    success: bool
    provider: str | None = None
    result: SendResult | None = None
    error: str | None = None
    attempts: tuple[Attempt, ...] = field(default=())

    def to_dict(self) -> dict[str, object]:
        body: dict[str, object] = {"success": self.success}
        if self.provider is not None:
            body["provider"] = self.provider
        if self.result is not None:
            body["message_id"] = self.result.message_id
            body["cost"] = self.result.cost
        if self.error is not None:
            body["error"] = self.error
        return body


class FailoverDispatcher:
    """Sends through the first provider that accepts the message.

    The provider list is snapshotted once per call. Providers whose
    ``can_send()`` is false are skipped; a provider that raises or returns
    an unsuccessful result is logged and the next one is tried. Only when
    every provider has been passed over does the call report failure,
    carrying the last error seen.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def send_with_failover(
        self, message: Message, tenant_id: str | None = None
    ) -> FailoverResult:
        providers = self._registry.get_all_providers(tenant_id)
        channel = self._registry.channel.value
        attempts: list[Attempt] = []
        last_error: str | None = None

        for provider in providers:
            log_ctx = {
                "channel": channel,
                "provider_type": provider.type,
                "provider_id": provider.id,
                "tenant_id": tenant_id,
            }
            if not provider.can_send():
                logger.info("Provider cannot send, skipping", extra=log_ctx)
                attempts.append(Attempt(provider.type, provider.id, "skipped"))
                last_error = last_error or f"Provider {provider.id} cannot send"
                continue

            try:
                result = self._attempt(provider, message)
            except NotificationError as exc:
                logger.warning(
                    "Provider failed, trying next",
                    extra={**log_ctx, "code": exc.code, "error": exc.message},
                )
                last_error = exc.message
                attempts.append(Attempt(provider.type, provider.id, "failed", exc.message))
                continue
            except Exception as exc:
                logger.exception("Provider raised unexpectedly, trying next", extra=log_ctx)
                last_error = str(exc) or type(exc).__name__
                attempts.append(Attempt(provider.type, provider.id, "failed", last_error))
                continue

            if not result.success:
                last_error = "; ".join(result.errors)
                logger.warning(
                    "Provider returned failure, trying next",
                    extra={**log_ctx, "error": last_error},
                )
                attempts.append(Attempt(provider.type, provider.id, "failed", last_error))
                continue

            attempts.append(Attempt(provider.type, provider.id, "sent"))
            logger.info(
                "Message sent",
                extra={**log_ctx, "message_id": result.message_id, "attempts": len(attempts)},
            )
            return FailoverResult(
                success=True,
                provider=provider.type,
                result=result,
                attempts=tuple(attempts),
            )

        error = last_error or f"No {channel} provider available"
        logger.error(
            "All providers failed",
            extra={"channel": channel, "tenant_id": tenant_id, "attempts": len(attempts), "error": error},
        )
        return FailoverResult(success=False, error=error, attempts=tuple(attempts))

    @staticmethod
    def _attempt(provider: Provider, message: Message) -> SendResult:
        return provider.deliver(provider.prepare(message))
