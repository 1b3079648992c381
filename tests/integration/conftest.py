"""Integration test fixtures using testcontainers.

Session-scoped containers for PostgreSQL and Redis; function-scoped
cleanup of the document table and the Redis keyspace.
"""

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from redis import Redis
from sqlalchemy import Engine, text
from sqlalchemy.orm import Session, sessionmaker
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from notify_shared.config import RedisConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatch_worker.context import create_redis_client

pytestmark = pytest.mark.integration

# ---------------------------------------------------------------------------
# Containers (session-scoped)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    with PostgresContainer("postgres:16-alpine", driver="psycopg2") as pg:
        yield pg


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    with RedisContainer("redis:7-alpine") as redis_c:
        yield redis_c


@pytest.fixture(scope="session")
def pg_dsn(postgres_container: PostgresContainer) -> str:
    return postgres_container.get_connection_url()


@pytest.fixture(scope="session")
def redis_host_port(redis_container: RedisContainer) -> tuple[str, int]:
    host = redis_container.get_container_host_ip()
    port = int(redis_container.get_exposed_port(6379))
    return host, port


# ---------------------------------------------------------------------------
# Environment variables (session-scoped)
# Pydantic-settings configs and the Alembic env read these automatically.
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def _set_env_vars(
    pg_dsn: str, redis_host_port: tuple[str, int]
) -> Generator[None, None, None]:
    overrides = {
        "DATABASE_URL": pg_dsn,
        "REDIS_HOST": redis_host_port[0],
        "REDIS_PORT": str(redis_host_port[1]),
    }

    saved: dict[str, str | None] = {}
    for key, value in overrides.items():
        saved[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    for key, old in saved.items():
        if old is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = old


# ---------------------------------------------------------------------------
# Database and Redis clients
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def db_engine(pg_dsn: str, _set_env_vars: None) -> Generator[Engine, None, None]:
    """Create engine and run Alembic migrations against testcontainer PG."""
    from alembic import command
    from alembic.config import Config as AlembicConfig

    engine = create_db_engine(pg_dsn, pool_pre_ping=True)

    shared_dir = Path(__file__).resolve().parents[2] / "shared"
    alembic_cfg = AlembicConfig(str(shared_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(shared_dir / "alembic"))
    command.upgrade(alembic_cfg, "head")

    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture()
def redis_client(_set_env_vars: None) -> Generator[Redis, None, None]:
    client = create_redis_client(RedisConfig())
    yield client
    client.flushdb()
    client.close()


@pytest.fixture(autouse=True)
def _cleanup_db(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """Truncate the document table after each test that touched PostgreSQL."""
    yield
    if "session_factory" not in request.fixturenames:
        return
    factory: sessionmaker[Session] = request.getfixturevalue("session_factory")
    with factory() as session:
        session.execute(text("TRUNCATE documents"))
        session.commit()
