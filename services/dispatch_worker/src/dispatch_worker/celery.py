"""Celery application setup and worker initialization."""

import logging

from celery import Celery, signals
from kombu import Queue
from kombu.common import Broadcast

from notify_shared.config import CeleryConfig, DatabaseConfig, RedisConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatch_worker.config import DispatchConfig
from dispatch_worker.context import DispatchContext, build_context, create_redis_client
from dispatch_worker.log import setup_logging

logger = logging.getLogger(__name__)

celery_config = CeleryConfig()
dispatch_config = DispatchConfig()

app = Celery("dispatch_worker", broker=celery_config.broker_url)

app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_queues=[
        Queue(celery_config.campaign_queue),
        Queue(celery_config.maintenance_queue),
        Broadcast(celery_config.provider_reload_queue),
    ],
    task_default_queue=celery_config.campaign_queue,
    task_routes={
        "dispatch_worker.tasks.deliver_campaign": {"queue": celery_config.campaign_queue},
        "dispatch_worker.tasks.sweep_expired_access_codes": {
            "queue": celery_config.maintenance_queue
        },
        "dispatch_worker.tasks.reload_providers": {
            "queue": celery_config.provider_reload_queue,
            "exchange": celery_config.provider_reload_queue,
        },
    },
    beat_schedule={
        "sweep-expired-access-codes": {
            "task": "dispatch_worker.tasks.sweep_expired_access_codes",
            "schedule": float(dispatch_config.sweep_interval_seconds),
        },
    },
)

app.autodiscover_tasks(["dispatch_worker"])


@signals.worker_init.connect
def _init_worker(**_kwargs: object) -> None:
    """Initialize shared resources once per worker process."""
    config = DispatchConfig()
    setup_logging(config.log_level)

    engine = create_db_engine(DatabaseConfig().dsn, pool_pre_ping=True)
    session_factory = create_session_factory(engine)
    redis_client = create_redis_client(RedisConfig())

    context = build_context(session_factory, config, redis_client=redis_client)

    app.conf.update(_dispatch_context=context)
    logger.info("Worker initialized")


@signals.worker_shutdown.connect
def _shutdown_worker(**_kwargs: object) -> None:
    """Clean up resources on worker shutdown."""
    context: DispatchContext | None = getattr(app.conf, "_dispatch_context", None)
    if context is not None:
        context.close()
    logger.info("Worker shut down")
