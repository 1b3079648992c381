"""Celery tasks for campaigns, access code upkeep and provider reloads."""

import logging

from notify_shared.enums import Channel

from dispatch_worker.campaigns import CampaignDelivery
from dispatch_worker.celery import app
from dispatch_worker.context import DispatchContext

logger = logging.getLogger(__name__)


@app.task(name="dispatch_worker.tasks.deliver_campaign")
def deliver_campaign(campaign_id: str) -> None:
    """Deliver a stored campaign.

    Dispatched by the API gateway right after the campaign document is
    written. Per-recipient failures end up in the campaign stats; this
    task does not retry.
    """
    context: DispatchContext = app.conf._dispatch_context
    CampaignDelivery(context).deliver(campaign_id)


@app.task(name="dispatch_worker.tasks.sweep_expired_access_codes")
def sweep_expired_access_codes() -> int:
    """Delete access codes past their expiry. Scheduled by celery beat."""
    context: DispatchContext = app.conf._dispatch_context
    return context.access_codes.sweep_expired(chunk_size=context.config.sweep_chunk_size)


@app.task(name="dispatch_worker.tasks.reload_providers")
def reload_providers(
    channel: str,
    tenant_id: str | None = None,
    provider_type: str | None = None,
) -> None:
    """Evict cached providers after a configuration change.

    Routed through a broadcast queue so every worker process drops its
    copy.
    """
    context: DispatchContext = app.conf._dispatch_context
    registry = context.registry_for(Channel(channel))
    if tenant_id is not None:
        registry.reload_tenant_providers(tenant_id)
    elif provider_type is not None:
        registry.reload_provider(provider_type)
    else:
        registry.reload_all_providers()
    logger.info(
        "Provider cache reloaded",
        extra={"channel": channel, "tenant_id": tenant_id, "provider_type": provider_type},
    )
