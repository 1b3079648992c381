from collections.abc import Generator
from unittest.mock import MagicMock

import httpx
import pytest
from flask import Flask
from flask.testing import FlaskClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.access_codes import AccessCodeService
from notify_shared.db.base import Base
from notify_shared.schemas.providers import ProviderConfig

from dispatch_worker.config import DispatchConfig
from dispatch_worker.context import DispatchContext
from dispatch_worker.registry import ProviderRegistry
from dispatch_worker.resolver import ProviderConfigResolver
from dispatch_worker.service import NotificationService

from api_gateway.app import create_app
from api_gateway.publisher import TaskPublisher

from services.dispatch_worker.tests.fakes import FakeEmailProvider, FakeSmsProvider


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
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
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


def _static(provider_type: str, priority: int, settings: dict) -> ProviderConfig:
    return ProviderConfig(
        id=f"{provider_type}-static",
        type=provider_type,
        name=provider_type.title(),
        priority=priority,
        config=settings,
    )


@pytest.fixture()
def context(session_factory: MagicMock) -> DispatchContext:
    """Context over fake vendors: email ``alpha``/``beta``, SMS ``one``."""
    email_registry = ProviderRegistry(
        "email",
        ProviderConfigResolver(
            session_factory,
            "email",
            {
                "alpha": _static("alpha", 1, {"from_email": "noreply@example.com"}),
                "beta": _static("beta", 2, {"from_email": "noreply@example.com"}),
            },
        ),
        {"alpha": FakeEmailProvider, "beta": FakeEmailProvider},
    )
    sms_registry = ProviderRegistry(
        "sms",
        ProviderConfigResolver(
            session_factory, "sms", {"one": _static("one", 1, {"from_number": "+33600000000"})}
        ),
        {"one": FakeSmsProvider},
    )
    return DispatchContext(
        session_factory=session_factory,
        config=DispatchConfig(),
        email_registry=email_registry,
        sms_registry=sms_registry,
        notifications=NotificationService(email_registry, sms_registry),
        access_codes=AccessCodeService(session_factory),
        http_client=MagicMock(spec=httpx.Client),
    )


@pytest.fixture()
def mock_publisher() -> MagicMock:
    return MagicMock(spec=TaskPublisher)


@pytest.fixture()
def mock_redis() -> MagicMock:
    redis_client = MagicMock()
    redis_client.ping.return_value = True
    return redis_client


@pytest.fixture()
def app(context: DispatchContext, mock_publisher: MagicMock, mock_redis: MagicMock) -> Flask:
    app = create_app(context, mock_publisher, mock_redis)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()
