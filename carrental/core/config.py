from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",   # ignore unknown keys in .env
    )

    DATABASE_URL: str
    DB_ECHO: bool = False
    # every core transaction is bounded by this; on expiry it is reported as retryable
    DB_OPERATION_TIMEOUT_SECONDS: float = 10.0
    # create missing tables at startup (local development without migrations)
    DB_CREATE_ALL: bool = False

    JWT_SECRET: str
    JWT_ACCESS_MINUTES: int = 30
    JWT_REFRESH_DAYS: int = 14
    JWT_ALG: str = "HS256"

    LOG_LEVEL: str = "INFO"

    CURRENCY: str = "INR"
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    NOTIFY_WEBHOOK_URL: str | None = None
    NOTIFY_TIMEOUT_SECONDS: float = 5.0


settings = Settings()
