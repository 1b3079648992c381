"""WSGI entry point for gunicorn.

Usage:
    gunicorn api_gateway.wsgi:app --bind 0.0.0.0:8000
"""
from notify_shared.config import CeleryConfig, DatabaseConfig, RedisConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatch_worker.config import DispatchConfig
from dispatch_worker.context import build_context, create_redis_client

from api_gateway.app import create_app
from api_gateway.config import GatewayConfig
from api_gateway.publisher import TaskPublisher

_engine = create_db_engine(DatabaseConfig().dsn, pool_pre_ping=True)
_redis = create_redis_client(RedisConfig())
_context = build_context(
    create_session_factory(_engine), DispatchConfig(), redis_client=_redis
)
app = create_app(_context, TaskPublisher(CeleryConfig()), _redis, GatewayConfig().log_level)
