# marketchat/main.py
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import create_async_engine

from marketchat.api import admin, auth, chats, realtime, users
from marketchat.config import AppConfig
from marketchat.delivery.channel import DeliveryChannel
from marketchat.delivery.presence import PresenceRegistry
from marketchat.delivery.rooms import RoomRegistry
from marketchat.domain.exceptions import ChatServiceError, Unauthorized
from marketchat.infrastructure.database import Database
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.event_handlers import EventHandlers
from marketchat.infrastructure.locks import KeyedLock
from marketchat.infrastructure.offline_relay import OfflineRelay
from marketchat.infrastructure.redis_client import RedisClient
from marketchat.infrastructure.security import SecurityService
from marketchat.infrastructure.test_data import init_demo_data
from marketchat.interactors.factory import InteractorFactory


class Application:
    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = self.setup_logger()
        engine = create_async_engine(config.DATABASE_URL, echo=False)
        self.database = Database(engine)
        self.redis_client = RedisClient(
            config.REDIS_HOST, config.REDIS_PORT, self.logger
        )
        self.security_service = SecurityService(config)
        self.locks = KeyedLock()
        self.rooms = RoomRegistry(self.logger)
        self.presence = PresenceRegistry(self.logger)
        self.offline_relay = OfflineRelay(
            self.redis_client,
            config.OFFLINE_QUEUE_LIMIT,
            config.OFFLINE_QUEUE_TTL_SECONDS,
            self.logger,
        )
        self.event_dispatcher = EventDispatcher(self.logger)
        self.event_handlers = EventHandlers(
            self.redis_client, self.rooms, self.presence, self.offline_relay, self.logger
        )
        self.event_handlers.register_all(self.event_dispatcher)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        await self.database.connect()
        await self.redis_client.connect()
        if self.config.SEED_DEMO_DATA:
            await init_demo_data(self.database.SessionLocal)
            self.logger.info("Demo data seeded")
        yield
        await self.database.disconnect()
        await self.redis_client.disconnect()

    def setup_logger(self):
        logger = logging.getLogger("MarketChat")
        logger.setLevel(self.config.LOG_LEVEL.upper())

        if not logger.handlers:
            c_handler = logging.StreamHandler(sys.stdout)
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            c_handler.setFormatter(formatter)
            logger.addHandler(c_handler)

        return logger

    def create_delivery_channel(self) -> DeliveryChannel:
        interactors = InteractorFactory(self.database, self.event_dispatcher, self.locks)
        return DeliveryChannel(
            self.config,
            self.security_service,
            interactors,
            self.presence,
            self.rooms,
            self.offline_relay,
            self.logger,
        )

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title=self.config.PROJECT_NAME,
            version=self.config.PROJECT_VERSION,
            description=self.config.PROJECT_DESCRIPTION,
            openapi_url=f"{self.config.API_V1_STR}/openapi.json",
            lifespan=self.lifespan,
        )

        app.state.config = self.config
        app.state.security_service = self.security_service
        app.state.event_dispatcher = self.event_dispatcher
        app.state.database = self.database
        app.state.logger = self.logger
        app.state.locks = self.locks
        app.state.presence = self.presence
        app.state.rooms = self.rooms
        app.state.offline_relay = self.offline_relay
        app.state.delivery_channel = self.create_delivery_channel()

        app.include_router(
            auth.router, prefix=f"{self.config.API_V1_STR}/auth", tags=["auth"]
        )
        app.include_router(
            users.router, prefix=f"{self.config.API_V1_STR}/users", tags=["users"]
        )
        app.include_router(
            chats.router, prefix=f"{self.config.API_V1_STR}/chats", tags=["chats"]
        )
        app.include_router(
            admin.router, prefix=f"{self.config.API_V1_STR}/admin", tags=["admin"]
        )
        app.include_router(
            realtime.router, prefix=self.config.API_V1_STR, tags=["realtime"]
        )

        @app.get(f"{self.config.API_V1_STR}/health", tags=["health"])
        async def health():
            return {"status": "ok", "onlineUsers": len(self.presence.online_user_ids())}

        @app.exception_handler(ChatServiceError)
        async def chat_service_exception_handler(request: Request, exc: ChatServiceError):
            headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.public_message},
                headers=headers,
            )

        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            self.logger.exception("Unhandled error")
            return JSONResponse(
                status_code=500,
                content={"message": f"An unexpected error occurred: {str(exc)}"},
            )

        return app


def create():
    config = AppConfig()
    application = Application(config)
    app = application.create_app()
    application.logger.info("Application created and configured")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create(), host="127.0.0.1", port=8000)
