from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Inventory Ledger"
    DATABASE_URL: str = "sqlite:///./inventory_ledger.db"
    DATABASE_ECHO: bool = False

    # JWT issued by the auth service (HS256)
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72

    # Stock mutation: attempts per increment/decrement before ConcurrencyConflict
    MUTATION_MAX_ATTEMPTS: int = 3
    MUTATION_RETRY_BACKOFF_SECONDS: float = 0.05

    # SQLite only: how long a writer waits for the database lock
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    HISTORY_DEFAULT_LIMIT: int = 10
    HISTORY_MAX_LIMIT: int = 100

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
