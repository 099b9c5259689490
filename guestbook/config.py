from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./guestbook.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Visit deduplication window (anonymous views collapse inside it)
    VISIT_WINDOW_MINUTES: int = 10

    # Timeline selection: everything from the last RECENT_HOURS
    # plus the RECENT_LIMIT most recent entries regardless of age
    RECENT_HOURS: int = 24
    RECENT_LIMIT: int = 10

    # Where to send the visitor after a successful write
    REDIRECT_URL: str = "https://bprp.xyz/guestbook"

    # Visitor identity / geolocation headers set by the edge proxy
    IP_HEADER: str = "x-real-ip"
    CITY_HEADER: str = "cf-ipcity"
    COUNTRY_HEADER: str = "cf-ipcountry"
    UNKNOWN_VALUE: str = "unknown"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
