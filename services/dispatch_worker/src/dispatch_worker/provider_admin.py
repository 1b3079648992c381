"""Tenant provider configuration management."""

import logging
from collections.abc import Callable, Mapping

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.collections import provider_collection
from notify_shared.db.store import DocumentStore
from notify_shared.enums import Channel
from notify_shared.errors import DuplicateError, NotFoundError, ProviderConfigError
from notify_shared.schemas.providers import (
    ProviderConfig,
    ProviderConfigCreate,
    ProviderConfigUpdate,
)

from dispatch_worker.registry import ProviderRegistry

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, str], None]


class ProviderConfigService:
    """CRUD over a tenant's provider configs.

    A tenant holds at most one config per provider type. Every change
    evicts the tenant's cached providers from the local registry and
    notifies *on_change* with ``(channel, tenant_id)`` so other processes
    can do the same.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registries: Mapping[str, ProviderRegistry],
        on_change: ChangeListener | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._registries = {Channel(k): v for k, v in registries.items()}
        self._on_change = on_change

    def list_providers(
        self, channel: str, tenant_id: str
    ) -> list[tuple[str, ProviderConfig]]:
        """Tenant configs plus global configs for types the tenant does not override.

        Returns ``(source, config)`` pairs sorted by priority.
        """
        with self._session_factory() as session:
            store = DocumentStore(session)
            tenant_docs = store.query(provider_collection(channel, tenant_id))
            global_docs = store.query(provider_collection(channel))

        merged: list[tuple[str, ProviderConfig]] = []
        overridden = set()
        for source, docs in (("tenant", tenant_docs), ("global", global_docs)):
            for doc_id, data in docs:
                try:
                    config = ProviderConfig.from_document(doc_id, data)
                except ValidationError:
                    logger.warning(
                        "Skipping malformed provider config",
                        extra={"doc_id": doc_id, "source": source, "tenant_id": tenant_id},
                    )
                    continue
                if source == "global" and config.type in overridden:
                    continue
                if source == "tenant":
                    overridden.add(config.type)
                merged.append((source, config))

        merged.sort(key=lambda item: item[1].priority)
        return merged

    def create_provider(
        self, channel: str, tenant_id: str, payload: ProviderConfigCreate
    ) -> ProviderConfig:
        registry = self._registries[Channel(channel)]
        constructor = registry.constructor_for(payload.type)
        self._check_required(constructor.required_config, payload.type, payload.config)

        collection = provider_collection(channel, tenant_id)
        with self._session_factory() as session:
            store = DocumentStore(session)
            if store.query(collection, [("type", "==", payload.type)], limit=1):
                raise DuplicateError(
                    f"Tenant {tenant_id} already has a {payload.type} provider",
                    provider_type=payload.type,
                )
            doc_id = store.add(collection, payload.model_dump(mode="json"))
            data = store.update(collection, doc_id, {"id": doc_id})
            session.commit()

        config = ProviderConfig.from_document(doc_id, data or {})
        logger.info(
            "Tenant provider created",
            extra={"channel": channel, "tenant_id": tenant_id, "provider_id": doc_id},
        )
        self._changed(channel, tenant_id)
        return config

    def update_provider(
        self,
        channel: str,
        tenant_id: str,
        provider_id: str,
        payload: ProviderConfigUpdate,
    ) -> ProviderConfig:
        collection = provider_collection(channel, tenant_id)
        with self._session_factory() as session:
            store = DocumentStore(session)
            current = store.get(collection, provider_id)
            if current is None:
                raise NotFoundError(f"Provider {provider_id} not found for tenant {tenant_id}")

            changes = payload.model_dump(mode="json", exclude_unset=True)
            config = ProviderConfig.from_document(provider_id, {**current, **changes})
            constructor = self._registries[Channel(channel)].constructor_for(config.type)
            self._check_required(constructor.required_config, config.type, config.config)

            store.set(collection, provider_id, config.to_document())
            session.commit()

        logger.info(
            "Tenant provider updated",
            extra={"channel": channel, "tenant_id": tenant_id, "provider_id": provider_id},
        )
        self._changed(channel, tenant_id)
        return config

    def delete_provider(self, channel: str, tenant_id: str, provider_id: str) -> None:
        with self._session_factory() as session:
            deleted = DocumentStore(session).delete(
                provider_collection(channel, tenant_id), provider_id
            )
            if not deleted:
                raise NotFoundError(f"Provider {provider_id} not found for tenant {tenant_id}")
            session.commit()

        logger.info(
            "Tenant provider deleted",
            extra={"channel": channel, "tenant_id": tenant_id, "provider_id": provider_id},
        )
        self._changed(channel, tenant_id)

    @staticmethod
    def _check_required(
        required: tuple[str, ...], provider_type: str, settings: dict
    ) -> None:
        missing = [key for key in required if not settings.get(key)]
        if missing:
            raise ProviderConfigError(
                f"Missing required settings for {provider_type}: {', '.join(missing)}",
                provider_type=provider_type,
            )

    def _changed(self, channel: str, tenant_id: str) -> None:
        self._registries[Channel(channel)].reload_tenant_providers(tenant_id)
        if self._on_change is not None:
            self._on_change(str(channel), tenant_id)
