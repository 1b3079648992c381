"""Dev entry point: python -m api_gateway."""
from notify_shared.config import CeleryConfig, DatabaseConfig, RedisConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatch_worker.config import DispatchConfig
from dispatch_worker.context import build_context, create_redis_client

from api_gateway.app import create_app
from api_gateway.config import GatewayConfig
from api_gateway.publisher import TaskPublisher


def main() -> None:
    config = GatewayConfig()
    session_factory = create_session_factory(create_db_engine(DatabaseConfig().dsn))
    redis_client = create_redis_client(RedisConfig())
    context = build_context(session_factory, DispatchConfig(), redis_client=redis_client)
    app = create_app(context, TaskPublisher(CeleryConfig()), redis_client, config.log_level)
    app.run(host=config.host, port=config.port)


if __name__ == "__main__":
    main()
