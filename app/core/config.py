from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "talent-tracker"

    DATABASE_URL: str = "sqlite+pysqlite:///./talent_tracker.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = "change_me"
    JWT_TTL_MINUTES: int = 1440

    CORS_ORIGINS: str = "http://localhost:5173"

    # List endpoints: silent bounds applied to every incoming descriptor
    QUERY_MAX_TAKE: int = 100
    QUERY_MAX_INCLUDE_DEPTH: int = 1
    QUERY_DEFAULT_TAKE: int = 10

    CLIENT_API_BASE_URL: str = "http://localhost:8000/api"
    CLIENT_TIMEOUT_SECONDS: float = 15.0
    CLIENT_CACHE_BACKEND: str = "memory"  # memory | redis
    CLIENT_CACHE_TTL_SECONDS: int = 300
    CLIENT_DEFAULT_PAGE_SIZE: int = 10

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
