"""Three-tier provider configuration lookup: tenant, global, static."""

import logging
from collections.abc import Mapping

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.collections import provider_collection
from notify_shared.db.store import DocumentStore
from notify_shared.errors import ConfigNotFoundError
from notify_shared.schemas.providers import ProviderConfig

logger = logging.getLogger(__name__)


class ProviderConfigResolver:
    """Resolves the config for one provider type on one channel.

    Tiers are consulted in order: the tenant's provider sub-collection,
    the global provider collection, then the static defaults. A read or
    parse error at a tier is logged and treated as "not found at this
    tier". Several active configs of one type at a tier are tolerated;
    the lowest ``(priority, id)`` wins.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        channel: str,
        static_defaults: Mapping[str, ProviderConfig],
    ) -> None:
        self._session_factory = session_factory
        self._channel = channel
        self._static_defaults = dict(static_defaults)

    @property
    def channel(self) -> str:
        return self._channel

    def resolve(self, provider_type: str, tenant_id: str | None = None) -> ProviderConfig:
        """Return the config for *provider_type*.

        Raises ConfigNotFoundError when no tier has one.
        """
        if tenant_id is not None:
            config = self._from_collection(
                provider_collection(self._channel, tenant_id), provider_type, tier="tenant"
            )
            if config is not None:
                return config

        config = self._from_collection(
            provider_collection(self._channel), provider_type, tier="global"
        )
        if config is not None:
            return config

        config = self._static_defaults.get(provider_type)
        if config is not None:
            return config

        raise ConfigNotFoundError(
            f"No {self._channel} configuration found for provider {provider_type!r}",
            provider_type=provider_type,
        )

    def _from_collection(
        self, collection: str, provider_type: str, *, tier: str
    ) -> ProviderConfig | None:
        log_ctx = {"collection": collection, "provider_type": provider_type, "tier": tier}
        try:
            with self._session_factory() as session:
                matches = DocumentStore(session).query(
                    collection, [("type", "==", provider_type), ("is_active", "==", True)]
                )
        except SQLAlchemyError:
            logger.exception("Provider config lookup failed, trying next tier", extra=log_ctx)
            return None

        candidates: list[tuple[int, str, ProviderConfig]] = []
        for doc_id, data in matches:
            try:
                config = ProviderConfig.from_document(doc_id, data)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed provider config",
                    extra={**log_ctx, "doc_id": doc_id, "errors": exc.errors(include_url=False)},
                )
                continue
            candidates.append((config.priority, doc_id, config))

        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "Several active configs for one provider type, using lowest priority",
                extra={**log_ctx, "candidates": [doc_id for _, doc_id, _ in candidates]},
            )
        _, _, config = min(candidates, key=lambda candidate: candidate[:2])
        return config
