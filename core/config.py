from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FETCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Fetch Points API"
    environment: str = "development"
    log_level: str = "INFO"

    # Callers presenting this key in X-System-Key may issue system credits.
    # Unset disables the credits endpoint.
    system_api_key: Optional[str] = None

    # Points
    starting_balance: int = 500
    points_expiration_days: int = 30

    # Store transactions
    transaction_max_attempts: int = 5
    transaction_backoff_base: float = 0.005  # seconds
    transaction_backoff_max: float = 0.2

    # Page sizes
    leaderboard_limit: int = 50
    history_limit: int = 50
    activity_limit: int = 20
    notifications_limit: int = 50


@lru_cache
def get_settings() -> Settings:
    return Settings()
