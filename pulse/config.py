"""Pulse Sync: Configuration via pydantic-settings."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8787
    WS_PATH: str = "/ws"
    SEND_TIMEOUT: float = 5.0  # seconds per outbound frame

    # Client target address
    WS_URL: str = "ws://localhost:8787/ws"

    # Built client bundle (served only to bootstrap the frontend)
    CLIENT_DIST_DIR: str = "./dist"

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Client identity + reconnection
    CLIENT_ID_FILE: str = "~/.pulse/user-id"
    RECONNECT_BASE_DELAY: float = 1.0  # seconds
    RECONNECT_MAX_DELAY: float = 30.0  # seconds
    RECONNECT_MAX_RETRIES: int = 5

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
