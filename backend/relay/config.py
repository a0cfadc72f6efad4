from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    APP_NAME: str = "Transfer Relay API"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Shared credential expected in the Authorization header of /upload
    TRANSFER_API_KEY: str = "change-me-dev"

    # Metadata store: "sql" or "redis"
    METADATA_BACKEND: str = "sql"
    DATABASE_URL: str = "sqlite:///./data/transfers.db"
    DB_CONNECT_TRIES: int = 60
    REDIS_URL: str = "redis://localhost:6379/0"

    DATA_DIR: str = "data/user_data"
    BACKUP_DIR: str = "data/user_backups_zipped"
    INCOMING_DIR: str = "data/incoming"

    TRANSFER_TTL_MS: int = 60 * 60 * 1000
    MAX_KEYS: int = 40

    SCHEDULER_ENABLED: bool = True
    CLEANUP_INTERVAL_SECONDS: int = 60 * 60
    SWEEP_BATCH_SIZE: int = 200

    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env.dev"
        extra = "ignore"

    def get_allowed_origins(self) -> List[str]:
        """
        ALLOWED_ORIGINS is a comma separated list; empty or "*" allows everything.
        """
        v = (self.ALLOWED_ORIGINS or "").strip()
        if v == "*" or v == "":
            return ["*"]
        return [s.strip() for s in v.split(",")]


@lru_cache
def get_settings() -> Settings:
    return Settings()
