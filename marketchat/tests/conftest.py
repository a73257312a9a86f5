# marketchat/tests/conftest.py

import logging

import fakeredis
import pytest
from fakeredis import aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketchat.config import AppConfig
from marketchat.delivery.presence import PresenceRegistry
from marketchat.delivery.rooms import RoomRegistry
from marketchat.gateways.chat_gateway import ChatGateway
from marketchat.gateways.message_gateway import MessageGateway
from marketchat.infrastructure.database import Base, Database
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock
from marketchat.infrastructure.offline_relay import OfflineRelay
from marketchat.infrastructure.redis_client import RedisClient
from marketchat.infrastructure.security import SecurityService
from marketchat.infrastructure.test_data import init_demo_data
from marketchat.infrastructure.uow import UnitOfWork
from marketchat.interactors.factory import InteractorFactory
from marketchat.main import Application


@pytest.fixture(scope="function")
def app_config():
    """
    Provide a test configuration backed by an in-memory SQLite database.
    """
    return AppConfig(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_HOST="localhost",
        REDIS_PORT=6379,
        SECRET_KEY="test_secret_key",
        DELIVERY_SECRET_KEY="test_delivery_secret_key",
        PROJECT_NAME="Test Market Chat API",
        PROJECT_VERSION="1.0.0",
        PROJECT_DESCRIPTION="Test Market Chat API",
        API_V1_STR="/api/v1",
        ALGORITHM="HS256",
        OFFLINE_QUEUE_LIMIT=5,
        DEFAULT_PAGE_SIZE=20,
        MAX_PAGE_SIZE=50,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def test_logger():
    logger = logging.getLogger("MarketChatTest")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture(scope="function")
async def mock_redis():
    """Provide a fake Redis client with its own server for every test."""
    redis = aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture(scope="function")
async def engine(app_config):
    """Create a SQLAlchemy engine sharing one in-memory SQLite connection."""
    engine = create_async_engine(
        app_config.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        from marketchat.infrastructure import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def seeded(session_factory):
    """Demo users u1 (buyer), u2 (seller), u3 (buyer), admin and product p1."""
    await init_demo_data(session_factory)


@pytest.fixture(scope="function")
async def db_session(session_factory, seeded):
    session = session_factory()
    yield session
    await session.close()


@pytest.fixture(scope="function")
def uow(db_session):
    return UnitOfWork(db_session)


@pytest.fixture(scope="function")
def chat_gateway(db_session, uow):
    return ChatGateway(db_session, uow)


@pytest.fixture(scope="function")
def message_gateway(db_session, uow):
    return MessageGateway(db_session, uow)


@pytest.fixture(scope="function")
def security_service(app_config):
    return SecurityService(app_config)


@pytest.fixture(scope="function")
def redis_client(mock_redis, test_logger):
    client = RedisClient("localhost", 6379, test_logger)
    client.client = mock_redis
    return client


@pytest.fixture(scope="function")
def offline_relay(redis_client, test_logger):
    return OfflineRelay(redis_client, limit=5, ttl_seconds=3600, logger=test_logger)


@pytest.fixture(scope="function")
def presence(test_logger):
    return PresenceRegistry(test_logger)


@pytest.fixture(scope="function")
def rooms(test_logger):
    return RoomRegistry(test_logger)


@pytest.fixture(scope="function")
def locks():
    return KeyedLock()


@pytest.fixture(scope="function")
def event_dispatcher(test_logger):
    return EventDispatcher(test_logger)


@pytest.fixture(scope="function")
def database(engine, session_factory, seeded):
    return Database(engine, session_factory)


@pytest.fixture(scope="function")
def interactor_factory(database, event_dispatcher, locks):
    return InteractorFactory(database, event_dispatcher, locks)


@pytest.fixture(scope="function")
def application(app_config, mock_redis, engine):
    """Application wired to the test database and fake Redis."""
    application = Application(config=app_config)
    application.database = Database(engine)
    application.redis_client.client = mock_redis
    return application


@pytest.fixture(scope="function")
async def app(application, seeded):
    return application.create_app()


@pytest.fixture(scope="function")
async def client(app):
    """Provide an HTTP client with the test app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture(scope="function")
def auth_headers(security_service):
    """Build session-credential headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        token, _ = security_service.create_access_token({"sub": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(scope="function")
async def direct_chat(client, auth_headers):
    response = await client.post(
        "/api/v1/chats", headers=auth_headers("u1"), json={"participantId": "u2"}
    )
    assert response.status_code == 200, response.text
    return response.json()
