from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fusion.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Timeline grouping
    EVENT_GROUP_WINDOW_SECONDS: float = 60.0
    EVENT_GROUP_SAME_DEVICE_WINDOW_SECONDS: float = 15.0
    TIMELINE_MAX_EVENTS: int = 500

    # Thumbnails
    THUMBNAIL_FETCH_TIMEOUT: float = 3.0
    THUMBNAIL_SIZE: str = "640x0"          # width x height, 0 = keep aspect
    THUMBNAIL_REQUIREMENTS_CACHE_TTL: float = 300.0

    # Automations
    AUTOMATION_QUEUE_KEY: str = "automations:events"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
