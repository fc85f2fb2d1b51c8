from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DEV: bool = False
    DATABASE_URL: str = "sqlite:///./flowgroups.db"
    SECRET_KEY: str = "change_me_in_env"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24h
    LOG_LEVEL: str = "INFO"

    # lifecycle
    ARCHIVE_RETENTION_DAYS: int = 30
    EXPIRING_THRESHOLD: float = 0.10
    INVITE_CODE_LENGTH: int = 6
    INVITE_CODE_TTL_DAYS: int = 7
    INVITE_CODE_MAX_ATTEMPTS: int = 10

    # sweep / reap
    SWEEP_CONCURRENCY: int = 8
    SWEEP_DEADLINE_SECONDS: float | None = None
    SCHEDULER_ENABLED: bool = False
    SWEEP_INTERVAL_SECONDS: int = 60
    REAP_INTERVAL_SECONDS: int = 60 * 60 * 24  # diario

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

settings = Settings()
