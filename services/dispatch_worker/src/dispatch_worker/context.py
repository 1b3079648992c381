"""Application context: the long-lived objects a process builds once."""

from dataclasses import dataclass

import httpx
from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.access_codes import AccessCodeService
from notify_shared.config import RedisConfig
from notify_shared.enums import Channel

from dispatch_worker.config import DispatchConfig
from dispatch_worker.rate_limiter import RateLimiter
from dispatch_worker.registry import ProviderRegistry, create_email_registry, create_sms_registry
from dispatch_worker.service import NotificationService


@dataclass
class DispatchContext:
    """Owns the provider registries and the services built on top of them."""

    session_factory: sessionmaker[Session]
    config: DispatchConfig
    email_registry: ProviderRegistry
    sms_registry: ProviderRegistry
    notifications: NotificationService
    access_codes: AccessCodeService
    http_client: httpx.Client

    def registry_for(self, channel: str) -> ProviderRegistry:
        if Channel(channel) == Channel.EMAIL:
            return self.email_registry
        return self.sms_registry

    def close(self) -> None:
        self.http_client.close()


def create_redis_client(config: RedisConfig) -> Redis:
    return Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        socket_timeout=config.socket_timeout_seconds,
    )


def build_context(
    session_factory: sessionmaker[Session],
    config: DispatchConfig,
    *,
    redis_client: Redis | None = None,
    http_client: httpx.Client | None = None,
) -> DispatchContext:
    """Wire registries, rate limiting and services for one process.

    Without a Redis client, configured provider rate limits are not
    enforced.
    """
    http_client = http_client or httpx.Client(timeout=config.provider_timeout_seconds)
    rate_limiter = RateLimiter(redis_client) if redis_client is not None else None

    email_registry = create_email_registry(
        session_factory, config, rate_limiter=rate_limiter, http_client=http_client
    )
    sms_registry = create_sms_registry(
        session_factory, config, rate_limiter=rate_limiter, http_client=http_client
    )
    return DispatchContext(
        session_factory=session_factory,
        config=config,
        email_registry=email_registry,
        sms_registry=sms_registry,
        notifications=NotificationService(
            email_registry,
            sms_registry,
            default_country_code=config.default_country_code,
        ),
        access_codes=AccessCodeService(session_factory),
        http_client=http_client,
    )
