"""Test fixtures for dispatch_worker tests."""

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.base import Base
from notify_shared.schemas.providers import ProviderConfig

from dispatch_worker.config import DispatchConfig
from dispatch_worker.rate_limiter import RateLimiter
from dispatch_worker.registry import ProviderRegistry
from dispatch_worker.resolver import ProviderConfigResolver

from services.dispatch_worker.tests.fakes import ConfigFactory, FakeEmailProvider, FakeSmsProvider


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """Create a single in-memory SQLite engine for the test session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Transactional session that rolls back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def session_factory(db_session: Session) -> MagicMock:
    """Session factory that always returns the test session.

    Wraps db_session so that ``with session_factory() as session:``
    returns our transactional test session.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def dispatch_config() -> DispatchConfig:
    return DispatchConfig()


@pytest.fixture()
def mock_rate_limiter() -> MagicMock:
    """Rate limiter that always allows."""
    limiter = MagicMock(spec=RateLimiter)
    limiter.check.return_value = True
    return limiter


@pytest.fixture()
def make_config() -> ConfigFactory:
    def _make(provider_type: str, priority: int = 1, **overrides: Any) -> ProviderConfig:
        data: dict[str, Any] = {
            "id": f"{provider_type}-{priority}",
            "type": provider_type,
            "name": provider_type.title(),
            "priority": priority,
            "config": {"from_email": "noreply@example.com"},
        }
        data.update(overrides)
        return ProviderConfig.model_validate(data)

    return _make


@pytest.fixture()
def email_registry(
    session_factory: MagicMock, make_config: ConfigFactory
) -> ProviderRegistry:
    """Email registry over three fake vendors with static configs only.

    ``alpha`` has priority 1, ``beta`` 2 and ``gamma`` 3.
    """
    defaults = {
        "alpha": make_config("alpha", 1),
        "beta": make_config("beta", 2),
        "gamma": make_config("gamma", 3),
    }
    resolver = ProviderConfigResolver(session_factory, "email", defaults)
    return ProviderRegistry(
        "email",
        resolver,
        {"alpha": FakeEmailProvider, "beta": FakeEmailProvider, "gamma": FakeEmailProvider},
    )


@pytest.fixture()
def sms_registry(
    session_factory: MagicMock, make_config: ConfigFactory
) -> ProviderRegistry:
    defaults = {
        "one": make_config("one", 1, config={"from_number": "+33600000000"}),
        "two": make_config("two", 2, config={"from_number": "+33600000001"}),
    }
    resolver = ProviderConfigResolver(session_factory, "sms", defaults)
    return ProviderRegistry(
        "sms",
        resolver,
        {"one": FakeSmsProvider, "two": FakeSmsProvider},
        provider_kwargs={"default_country_code": "33"},
    )
