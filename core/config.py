from functools import lru_cache
from pathlib import Path
from typing import List
from uuid import UUID

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[1] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), case_sensitive=False, extra="ignore")

    APP_NAME: str = "Referral Rewards Portal"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Set by the upstream identity gateway after it has verified the session.
    IDENTITY_HEADER: str = "X-User-Id"
    ADMIN_USER_IDS: str = ""

    DEFAULT_DENIAL_REASON: str = "Denied"
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200

    SEED_DEMO_DATA: bool = True
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def cors_origins(self) -> List[str]:
        return [value.strip().rstrip("/") for value in self.CORS_ORIGINS.split(",") if value.strip()]

    @property
    def admin_user_ids(self) -> set[UUID]:
        ids: set[UUID] = set()
        for raw in self.ADMIN_USER_IDS.split(","):
            value = raw.strip()
            if value:
                ids.add(UUID(value))
        return ids


@lru_cache
def get_settings() -> Settings:
    return Settings()
