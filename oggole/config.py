from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # SQLite for local development, PostgreSQL in production
    # Full-text ranking is only available on PostgreSQL
    database_url: str = "sqlite:///./oggole.db"

    # Session lifetime in hours
    session_expire_hours: int = 24

    # Cookie security settings
    # secure=True enforces HTTPS only; set COOKIE_SECURE=false for plain HTTP development
    cookie_secure: bool = True

    # Argon2id cost parameters, clamped to safe minimums by the hasher factory
    password_hash_time_cost: int = 3
    password_hash_memory_cost: int = 65536
    password_hash_parallelism: int = 4

    search_max_query_length: int = 200
    search_result_limit: int = 50

    # OpenWeatherMap; requests are refused with 503 while the key is missing
    weather_api_key: Optional[str] = None
    weather_api_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_latitude: float = 55.6761
    weather_longitude: float = 12.5683
    weather_cache_minutes: int = 15
    weather_timeout_seconds: float = 10.0

    # Static key the crawler sends in X-API-Key for bulk page ingestion
    crawler_api_key: Optional[str] = None

    @field_validator("weather_api_key", "crawler_api_key")
    @classmethod
    def blank_secret_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("weather_timeout_seconds")
    @classmethod
    def cap_weather_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("weather timeout must be positive")
        return min(v, 10.0)

    @property
    def session_max_age(self) -> int:
        return self.session_expire_hours * 3600

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
