from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Ledger"
    DATABASE_URL: str = "sqlite:///./stockledger.db"
    DATABASE_ECHO: bool = False

    # Seconds a SQLite writer waits for the database lock before giving up
    SQLITE_BUSY_TIMEOUT: float = 30.0

    # Stock policy
    ALLOW_NEGATIVE_STOCK: bool = False

    # Optimistic-lock conflicts are retried this many times before surfacing
    CONCURRENCY_MAX_RETRIES: int = 5
    RETRY_BASE_DELAY: float = 0.02
    RETRY_MAX_DELAY: float = 0.5

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
