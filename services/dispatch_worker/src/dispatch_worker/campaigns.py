"""Event notification campaigns: per-recipient codes, rendering and delivery."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from jinja2 import TemplateError

from notify_shared.db.collections import COLLECTION_CAMPAIGNS
from notify_shared.db.store import DocumentStore
from notify_shared.enums import CampaignStatus, Channel
from notify_shared.errors import NotificationError
from notify_shared.schemas.campaigns import (
    CampaignDocument,
    CampaignRecipient,
    CampaignStats,
)

from dispatch_worker.context import DispatchContext
from dispatch_worker.renderer import render_template

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RecipientOutcome:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    pin_codes: int = 0
    qr_codes: int = 0


class CampaignDelivery:
    """Delivers a stored campaign to all of its recipients.

    Recipients are processed in fixed-size chunks; each chunk fans out on
    a thread pool and is fully joined before the next one starts. A
    failure for one recipient is logged and counted, never raised.
    """

    def __init__(self, context: DispatchContext) -> None:
        self._ctx = context

    def deliver(self, campaign_id: str) -> CampaignStats | None:
        with self._ctx.session_factory() as session:
            store = DocumentStore(session)
            data = store.get(COLLECTION_CAMPAIGNS, campaign_id)
            if data is None:
                logger.warning("Campaign not found, skipping", extra={"campaign_id": campaign_id})
                return None

            campaign = CampaignDocument.model_validate(data)
            if campaign.status == CampaignStatus.COMPLETED:
                logger.info("Campaign already completed, skipping", extra={"campaign_id": campaign_id})
                return campaign.stats

            store.update(COLLECTION_CAMPAIGNS, campaign_id, {"status": CampaignStatus.SENDING.value})
            session.commit()

        log_ctx = {
            "campaign_id": campaign_id,
            "event_id": campaign.event_id,
            "tenant_id": campaign.tenant_id,
            "recipients": len(campaign.recipients),
        }
        logger.info("Campaign delivery started", extra=log_ctx)

        stats = CampaignStats()
        chunk_size = max(1, self._ctx.config.campaign_chunk_size)
        recipients = campaign.recipients
        for start in range(0, len(recipients), chunk_size):
            chunk = recipients[start:start + chunk_size]
            for outcome in self._deliver_chunk(campaign, chunk):
                stats.sent += outcome.sent
                stats.failed += outcome.failed
                stats.skipped += outcome.skipped
                stats.pin_codes_generated += outcome.pin_codes
                stats.qr_codes_generated += outcome.qr_codes

        status = CampaignStatus.COMPLETED
        if stats.sent == 0 and stats.failed > 0:
            status = CampaignStatus.FAILED

        with self._ctx.session_factory() as session:
            DocumentStore(session).update(
                COLLECTION_CAMPAIGNS,
                campaign_id,
                {
                    "status": status.value,
                    "stats": stats.model_dump(),
                    "completed_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            session.commit()

        logger.info(
            "Campaign delivery finished",
            extra={**log_ctx, "status": status.value, **stats.model_dump()},
        )
        return stats

    def _deliver_chunk(
        self, campaign: CampaignDocument, chunk: list[CampaignRecipient]
    ) -> list[_RecipientOutcome]:
        outcomes = []
        workers = max(1, min(self._ctx.config.campaign_max_workers, len(chunk)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._deliver_recipient, campaign, recipient): recipient
                for recipient in chunk
            }
            for future in as_completed(futures):
                recipient = futures[future]
                try:
                    outcomes.append(future.result())
                except Exception:
                    logger.exception(
                        "Recipient delivery crashed",
                        extra={"event_id": campaign.event_id, "user_id": recipient.user_id},
                    )
                    outcomes.append(_RecipientOutcome(failed=1))
        return outcomes

    def _deliver_recipient(
        self, campaign: CampaignDocument, recipient: CampaignRecipient
    ) -> _RecipientOutcome:
        outcome = _RecipientOutcome()
        context: dict[str, Any] = {
            "first_name": recipient.first_name,
            "last_name": recipient.last_name,
            "event_id": campaign.event_id,
            "pin_code": "",
            "qr_token": "",
        }
        log_ctx = {"event_id": campaign.event_id, "user_id": recipient.user_id}
        notifications = self._ctx.notifications
        access_codes = self._ctx.access_codes

        wants_email = Channel.EMAIL in campaign.channels and recipient.wants(Channel.EMAIL)
        if campaign.email is not None and wants_email:
            if not recipient.email:
                outcome.skipped += 1
            else:
                try:
                    if campaign.email.generate_qr:
                        qr = access_codes.create_qr(
                            campaign.event_id, recipient.user_id, campaign.qr_ttl_hours
                        )
                        context["qr_token"] = qr.code
                        outcome.qr_codes += 1
                    result = notifications.send_email(
                        recipient.email,
                        render_template(campaign.email.subject, context),
                        html=render_template(campaign.email.body, context, html=True),
                        tenant_id=campaign.tenant_id,
                    )
                except (NotificationError, TemplateError) as exc:
                    logger.warning("Campaign email failed", extra={**log_ctx, "error": str(exc)})
                    outcome.failed += 1
                else:
                    if result.success:
                        outcome.sent += 1
                    else:
                        outcome.failed += 1

        wants_sms = Channel.SMS in campaign.channels and recipient.wants(Channel.SMS)
        if campaign.sms is not None and wants_sms:
            if not recipient.phone:
                outcome.skipped += 1
            else:
                try:
                    if campaign.sms.generate_pin:
                        pin = access_codes.create_pin(
                            campaign.event_id, recipient.user_id, campaign.pin_ttl_minutes
                        )
                        context["pin_code"] = pin.code
                        outcome.pin_codes += 1
                    result = notifications.send_sms(
                        recipient.phone,
                        render_template(campaign.sms.body, context),
                        tenant_id=campaign.tenant_id,
                    )
                except (NotificationError, TemplateError) as exc:
                    logger.warning("Campaign SMS failed", extra={**log_ctx, "error": str(exc)})
                    outcome.failed += 1
                else:
                    if result.success:
                        outcome.sent += 1
                    else:
                        outcome.failed += 1

        return outcome
