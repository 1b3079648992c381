import logging

from celery import Celery
from kombu import Queue
from kombu.common import Broadcast

from notify_shared.config import CeleryConfig

logger = logging.getLogger(__name__)

_DELIVER_CAMPAIGN = "dispatch_worker.tasks.deliver_campaign"
_RELOAD_PROVIDERS = "dispatch_worker.tasks.reload_providers"


class TaskPublisher:
    """Sends tasks to the dispatch workers by name over the Celery broker.

    The gateway never imports the worker's task modules; it only needs
    the task names and the queues they are routed to.
    """

    def __init__(self, config: CeleryConfig) -> None:
        self._config = config
        self._app = Celery("api_gateway", broker=config.broker_url)
        self._app.conf.update(
            task_queues=[
                Queue(config.campaign_queue),
                Broadcast(config.provider_reload_queue),
            ],
        )

    def enqueue_campaign(self, campaign_id: str) -> None:
        self._app.send_task(
            _DELIVER_CAMPAIGN,
            kwargs={"campaign_id": campaign_id},
            queue=self._config.campaign_queue,
        )

    def broadcast_reload(
        self,
        channel: str,
        tenant_id: str | None = None,
        provider_type: str | None = None,
    ) -> None:
        """Ask every worker process to drop its cached providers."""
        self._app.send_task(
            _RELOAD_PROVIDERS,
            kwargs={
                "channel": channel,
                "tenant_id": tenant_id,
                "provider_type": provider_type,
            },
            queue=self._config.provider_reload_queue,
            exchange=self._config.provider_reload_queue,
        )
        logger.info(
            "Provider reload broadcast",
            extra={"channel": channel, "tenant_id": tenant_id, "provider_type": provider_type},
        )

    def close(self) -> None:
        self._app.close()
