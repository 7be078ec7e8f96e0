from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage settings
    # postgresql://... uses the psycopg pool, anything else is an SQLite path
    DATABASE_URL: str = "sqlite:///./reminders.db"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # CLAIM QUEUE SETTINGS
    # =================================================================
    CLAIM_TIMEOUT_MINUTES: int = 5
    CLAIM_DEFAULT_LIMIT: int = 10
    MAX_DELIVERY_ATTEMPTS: int = 3

    # =================================================================
    # DATABASE POOL SETTINGS (postgres only)
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def is_postgres(self) -> bool:
        return self.DATABASE_URL.startswith(("postgresql://", "postgres://"))

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Pollers are few in development
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
