import atexit
import logging

from flask import Flask
from redis import Redis

from notify_shared.enums import Channel

from dispatch_worker.context import DispatchContext
from dispatch_worker.provider_admin import ProviderConfigService

from api_gateway.log import setup_logging
from api_gateway.publisher import TaskPublisher
from api_gateway.routes import bp

logger = logging.getLogger(__name__)


def create_app(
    context: DispatchContext,
    publisher: TaskPublisher,
    redis_client: Redis | None = None,
    log_level: str = "INFO",
) -> Flask:
    """Flask application factory.

    Args:
        context: Registries and services shared with the dispatch worker.
        publisher: Celery task publisher (real or mock for tests).
        redis_client: Used only by the health check; ``None`` skips it.
        log_level: Root log level.
    """
    setup_logging(log_level)

    app = Flask(__name__)
    app.extensions["dispatch_context"] = context
    app.extensions["task_publisher"] = publisher
    app.extensions["redis_client"] = redis_client
    app.extensions["provider_admin"] = ProviderConfigService(
        context.session_factory,
        {Channel.EMAIL: context.email_registry, Channel.SMS: context.sms_registry},
        on_change=publisher.broadcast_reload,
    )

    app.register_blueprint(bp)

    atexit.register(publisher.close)
    atexit.register(context.close)

    logger.info("API Gateway initialized")
    return app
