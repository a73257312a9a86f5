# marketchat/config.py
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    PROJECT_NAME: str = "Market Chat API"
    PROJECT_VERSION: str = "1.0.0"
    PROJECT_DESCRIPTION: str = "Real-time buyer/seller chat for the marketplace"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # session credentials are issued by the identity service, we only verify them
    SECRET_KEY: str
    DELIVERY_SECRET_KEY: str
    ALGORITHM: str = "HS256"
    DELIVERY_TOKEN_EXPIRE_SECONDS: int = 300

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    HANDSHAKE_TIMEOUT_SECONDS: float = 5.0
    OFFLINE_QUEUE_LIMIT: int = 100
    OFFLINE_QUEUE_TTL_SECONDS: int = 7 * 24 * 3600
    OFFLINE_DRAIN_ON_CONNECT: bool = True
    PRESENCE_SCOPE: Literal["global", "partners"] = "global"

    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    SEED_DEMO_DATA: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="allow")
