from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://eventhub:eventhub_dev@db:5432/eventhub"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALLOWED_ORIGINS: str = "*"

    # Vendor discovery
    DEFAULT_SEARCH_RADIUS_KM: float = 25.0
    MAX_SEARCH_RADIUS_KM: float = 500.0

    # Negotiation
    RETRACT_ACROSS_PROJECTS: bool = False
    RETRACTION_MAX_ATTEMPTS: int = 5

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
