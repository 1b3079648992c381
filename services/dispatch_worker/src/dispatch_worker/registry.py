"""Per-channel provider registry with tenant-aware caching."""

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.enums import Channel
from notify_shared.errors import NotificationError, UnsupportedProviderTypeError

from dispatch_worker.config import DispatchConfig
from dispatch_worker.defaults import load_static_defaults
from dispatch_worker.providers import PROVIDERS_BY_CHANNEL
from dispatch_worker.providers.base import Provider
from dispatch_worker.rate_limiter import RateLimiter
from dispatch_worker.resolver import ProviderConfigResolver

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Constructs, caches and reloads provider instances for one channel.

    Instances are cached in two tiers: a flat map for global lookups and
    a map per tenant. A config change in the store stays invisible until
    the matching ``reload_*`` call evicts the cached instance. The maps
    are not locked; concurrent first access may build two equivalent
    instances, and the last one stored wins.
    """

    def __init__(
        self,
        channel: str,
        resolver: ProviderConfigResolver,
        constructors: Mapping[str, type[Provider]],
        *,
        provider_kwargs: Mapping[str, Any] | None = None,
    ) -> None:
        self._channel = Channel(channel)
        self._resolver = resolver
        self._constructors = dict(constructors)
        self._provider_kwargs = dict(provider_kwargs or {})
        self._global: dict[str, Provider] = {}
        self._tenants: dict[str, dict[str, Provider]] = {}

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def provider_types(self) -> tuple[str, ...]:
        return tuple(self._constructors)

    def constructor_for(self, provider_type: str) -> type[Provider]:
        """Return the provider class for *provider_type*.

        Raises UnsupportedProviderTypeError if the channel has none.
        """
        try:
            return self._constructors[provider_type]
        except KeyError:
            raise UnsupportedProviderTypeError(
                f"Unsupported {self._channel} provider type: {provider_type!r}",
                provider_type=provider_type,
            ) from None

    def get_provider(self, provider_type: str) -> Provider:
        return self.get_provider_for_tenant(provider_type, None)

    def get_provider_for_tenant(
        self, provider_type: str, tenant_id: str | None
    ) -> Provider:
        """Return the cached instance, building it on first access.

        Raises UnsupportedProviderTypeError, ConfigNotFoundError or
        ProviderConfigError.
        """
        constructor = self.constructor_for(provider_type)
        cache = self._global if tenant_id is None else self._tenants.setdefault(tenant_id, {})

        provider = cache.get(provider_type)
        if provider is not None:
            return provider

        config = self._resolver.resolve(provider_type, tenant_id)
        provider = constructor(config, **self._provider_kwargs)
        cache[provider_type] = provider
        logger.info(
            "Provider instance created",
            extra={
                "channel": self._channel.value,
                "provider_type": provider_type,
                "provider_id": provider.id,
                "tenant_id": tenant_id,
            },
        )
        return provider

    def get_all_providers(self, tenant_id: str | None = None) -> list[Provider]:
        """Active providers sorted by ascending priority.

        Types whose config cannot be resolved or whose provider cannot be
        built are skipped with a warning. Equal priorities keep the
        registration order of the provider classes.
        """
        providers = []
        for provider_type in self._constructors:
            log_ctx = {
                "channel": self._channel.value,
                "provider_type": provider_type,
                "tenant_id": tenant_id,
            }
            try:
                provider = self.get_provider_for_tenant(provider_type, tenant_id)
            except NotificationError as exc:
                logger.warning(
                    "Skipping provider",
                    extra={**log_ctx, "code": exc.code, "reason": exc.message},
                )
                continue
            except Exception:
                logger.exception("Skipping provider after construction error", extra=log_ctx)
                continue
            if provider.is_active:
                providers.append(provider)

        providers.sort(key=lambda p: p.priority)
        return providers

    def reload_provider(self, provider_type: str) -> None:
        """Evict *provider_type* from the global cache and every tenant cache."""
        self._global.pop(provider_type, None)
        for cache in self._tenants.values():
            cache.pop(provider_type, None)
        logger.info(
            "Provider reloaded",
            extra={"channel": self._channel.value, "provider_type": provider_type},
        )

    def reload_tenant_providers(self, tenant_id: str) -> None:
        self._tenants.pop(tenant_id, None)
        logger.info(
            "Tenant providers reloaded",
            extra={"channel": self._channel.value, "tenant_id": tenant_id},
        )

    def reload_all_providers(self) -> None:
        self._global.clear()
        self._tenants.clear()
        logger.info("All providers reloaded", extra={"channel": self._channel.value})

    def test_all_providers(self, tenant_id: str | None = None) -> dict[str, bool]:
        """Run ``test_connection`` on every active provider; never stops early."""
        results = {}
        for provider in self.get_all_providers(tenant_id):
            results[provider.type] = provider.test_connection()
        logger.info(
            "Provider connection tests finished",
            extra={"channel": self._channel.value, "tenant_id": tenant_id, "results": results},
        )
        return results


def create_registry(
    channel: str,
    session_factory: sessionmaker[Session],
    config: DispatchConfig,
    *,
    rate_limiter: RateLimiter | None = None,
    http_client: httpx.Client | None = None,
) -> ProviderRegistry:
    """Build a registry for *channel* with the built-in vendor classes."""
    channel = Channel(channel)
    resolver = ProviderConfigResolver(
        session_factory, channel, load_static_defaults(channel)
    )
    provider_kwargs: dict[str, Any] = {
        "rate_limiter": rate_limiter,
        "http_client": http_client,
        "timeout": config.provider_timeout_seconds,
    }
    if channel == Channel.SMS:
        provider_kwargs["default_country_code"] = config.default_country_code
    return ProviderRegistry(
        channel,
        resolver,
        PROVIDERS_BY_CHANNEL[channel],
        provider_kwargs=provider_kwargs,
    )


def create_email_registry(
    session_factory: sessionmaker[Session], config: DispatchConfig, **kwargs: Any
) -> ProviderRegistry:
    return create_registry(Channel.EMAIL, session_factory, config, **kwargs)


def create_sms_registry(
    session_factory: sessionmaker[Session], config: DispatchConfig, **kwargs: Any
) -> ProviderRegistry:
    return create_registry(Channel.SMS, session_factory, config, **kwargs)
